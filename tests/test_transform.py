from payloads import grounded_payload, maps_chunk

from pharmafinder.etl import transform


def test_extract_text_joins_parts():
    payload = {"candidates": [{"content": {"parts": [{"text": "Two pharmacies "}, {"text": "nearby."}]}}]}
    assert transform.extract_text(payload) == "Two pharmacies nearby."
    assert transform.extract_text({}) == ""
    assert transform.extract_text({"candidates": []}) == ""


def test_extract_grounding_chunks_tolerates_missing_metadata():
    assert transform.extract_grounding_chunks({"candidates": [{"content": {}}]}) == []
    assert transform.extract_grounding_chunks(None) == []

    payload = grounded_payload("ok", [maps_chunk("https://maps/a"), "junk"])
    assert transform.extract_grounding_chunks(payload) == [maps_chunk("https://maps/a")]


def test_to_pharmacy_results_dedupes_by_link_keeping_first():
    chunks = [
        maps_chunk("A", title="Alpha", place_id="p-a"),
        maps_chunk("B", title="Beta", place_id="p-b"),
        maps_chunk("A", title="Alpha again", place_id="p-a2"),
        maps_chunk("C", title="Gamma", place_id="p-c"),
    ]

    results = transform.to_pharmacy_results(chunks)

    assert [result.maps_uri for result in results] == ["A", "B", "C"]
    assert results[0].name == "Alpha"
    assert results[0].id == "p-a"


def test_to_pharmacy_results_skips_web_chunks_and_fills_defaults():
    chunks = [
        {"web": {"uri": "https://example.com", "title": "Example"}},
        {"maps": {}},
        maps_chunk("https://maps/b", title="Beta", review="Friendly staff, open 24 hours"),
    ]

    results = transform.to_pharmacy_results(chunks)

    assert len(results) == 2
    first, second = results
    assert first.id == "pharmacy-0"
    assert first.name == transform.UNKNOWN_NAME
    assert first.maps_uri == transform.PLACEHOLDER_URI
    assert first.snippet == transform.DEFAULT_SNIPPET
    assert second.id == "pharmacy-1"
    assert second.snippet == "Friendly staff, open 24 hours"
    assert second.is_open_24_7 is True


def test_to_pharmacy_results_keeps_ids_unique():
    chunks = [
        maps_chunk("A", title="Alpha", place_id="same"),
        maps_chunk("B", title="Beta", place_id="same"),
    ]

    results = transform.to_pharmacy_results(chunks)

    assert [result.id for result in results] == ["same", "same-1"]


def test_to_pharmacy_result_copies_address():
    result = transform.to_pharmacy_result({"uri": "A", "title": "Alpha", "address": "1 Main St"}, 0)
    assert result.address == "1 Main St"
    assert result.to_dict()["mapsUri"] == "A"


def test_extract_text_ignores_malformed_content():
    assert transform.extract_text({"candidates": [{"content": ["blocked"]}]}) == ""
    assert transform.extract_text({"candidates": [{"content": {"parts": {"text": "x"}}}]}) == ""
    assert transform.extract_text({"candidates": [{"content": {"parts": [{"text": 42}, {"text": "ok"}]}}]}) == "ok"
    assert transform.extract_text(["not", "a", "dict"]) == ""


def test_extract_grounding_chunks_ignores_malformed_metadata():
    assert transform.extract_grounding_chunks({"candidates": [{"groundingMetadata": ["x"]}]}) == []
    assert transform.extract_grounding_chunks({"candidates": [{"groundingMetadata": {"groundingChunks": {"a": 1}}}]}) == []


def test_to_pharmacy_results_tolerates_malformed_place_fields():
    chunks = [
        {"maps": {"uri": "A", "title": "Alpha", "placeAnswerSources": [{"content": "x"}]}},
        {"maps": {"uri": "B", "title": "Beta", "placeAnswerSources": {"reviewSnippets": {"content": "x"}}}},
        {"maps": {"uri": ["C"], "title": {"text": "Gamma"}, "placeId": 7}},
        "junk",
    ]

    results = transform.to_pharmacy_results(chunks)

    assert [result.maps_uri for result in results] == ["A", "B", transform.PLACEHOLDER_URI]
    assert results[0].snippet == transform.DEFAULT_SNIPPET
    assert results[1].snippet == transform.DEFAULT_SNIPPET
    assert results[2].name == transform.UNKNOWN_NAME
    assert results[2].id == "7"
