"""Title/artist cleanup: local parser and the two-stage AI chain"""
from unittest.mock import MagicMock

import pytest

from beatstream.api.ai import OpenRouterClient
from beatstream.api.errors import UpstreamError
from beatstream.api.metadata import MetadataCleaner, parse_title_locally, split_artist_names


@pytest.mark.parametrize(
    "raw, title, artists",
    [
        ("Tulus - Gajah (Official Music Video)", "Gajah", ["Tulus"]),
        ("Tulus & Raisa - Duet", "Duet", ["Tulus", "Raisa"]),
        ("SingleWordTitle", "SingleWordTitle", ["SingleWordTitle"]),
        ("Alan Walker x Ava Max - Alone, Pt. II [Official Video]", "Alone, Pt. II", ["Alan Walker", "Ava Max"]),
        ("Hindia feat. Rara Sekar - Secukupnya (Lyrics)", "Secukupnya", ["Hindia", "Rara Sekar"]),
        ("Sheila On 7 - Dan LYRICS", "Dan", ["Sheila On 7"]),
    ],
)
def test_parse_title_locally(raw, title, artists):
    result = parse_title_locally(raw)
    assert result.title == title
    assert result.artists == artists


def test_parse_title_locally_falls_back_to_raw_when_parts_are_empty():
    result = parse_title_locally(" - (Official Video)")
    assert result.title == "- (Official Video)"
    assert result.artists == ["- (Official Video)"]


def test_split_artist_names_is_case_insensitive_and_drops_blanks():
    assert split_artist_names("A AND B, , C Ft. D") == ["A", "B", "C", "D"]


def _ai_client(*answers):
    client = MagicMock()
    client.configured = True
    client.complete.side_effect = list(answers)
    return client


def test_cleaner_without_ai_key_uses_local_parser():
    client = MagicMock()
    client.configured = False

    result = MetadataCleaner(client, model="m").clean("Tulus - Gajah (Official Music Video)")

    assert (result.title, result.artists) == ("Gajah", ["Tulus"])
    client.complete.assert_not_called()


def test_cleaner_uses_verified_answer_from_second_stage():
    client = _ai_client(
        'Sure! {"title": "Gajah (Live)", "artists": ["Tulus"]}',
        '```json\n{"title": "Gajah", "artists": ["Tulus"]}\n```',
    )

    result = MetadataCleaner(client, model="m").clean("Tulus - Gajah (Live) [Official Video]")

    assert (result.title, result.artists) == ("Gajah", ["Tulus"])
    assert client.complete.call_count == 2
    second_prompt = client.complete.call_args_list[1].args[0][1]["content"]
    assert '"title": "Gajah (Live)"' in second_prompt


def test_cleaner_keeps_first_stage_when_second_stage_fails():
    client = _ai_client('{"title": "Gajah", "artists": ["Tulus"]}', UpstreamError("AI provider returned an error."))

    result = MetadataCleaner(client, model="m").clean("Tulus - Gajah (Official Music Video)")

    assert (result.title, result.artists) == ("Gajah", ["Tulus"])


def test_cleaner_keeps_first_stage_when_second_stage_has_no_json():
    client = _ai_client('{"title": "Gajah", "artists": ["Tulus"]}', "I cannot help with that.")

    result = MetadataCleaner(client, model="m").clean("whatever")

    assert (result.title, result.artists) == ("Gajah", ["Tulus"])


def test_cleaner_falls_back_to_local_parser_when_first_stage_fails():
    client = _ai_client(UpstreamError("AI provider request failed."))

    result = MetadataCleaner(client, model="m").clean("Tulus & Raisa - Duet (Official Video)")

    assert (result.title, result.artists) == ("Duet", ["Tulus", "Raisa"])
    assert client.complete.call_count == 1


def test_cleaner_fills_missing_fields_from_previous_stage():
    client = _ai_client('{"title": "", "artists": ["Tulus"]}', '{"title": "Gajah"}')

    result = MetadataCleaner(client, model="m").clean("Tulus - Gajah")

    assert (result.title, result.artists) == ("Gajah", ["Tulus"])


def test_cleaner_falls_back_to_local_parser_on_malformed_ai_reply():
    response = MagicMock(ok=True, status_code=200)
    response.json.return_value = {"choices": [{"message": None}]}
    session = MagicMock()
    session.post.return_value = response

    result = MetadataCleaner(OpenRouterClient("key", session=session), model="m").clean(
        "Tulus - Gajah (Official Music Video)"
    )

    assert (result.title, result.artists) == ("Gajah", ["Tulus"])
