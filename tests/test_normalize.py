import base64

from fakes import gemini_text

from newsdesk.ai.normalize import (
    as_chat_completion,
    as_gemini_text_payload,
    extract_chat_text,
    extract_inline_image,
    extract_inline_image_b64,
    extract_text,
    strip_code_fence,
    to_chat_messages,
    to_data_uri,
)


def test_extract_text_concatenates_parts():
    payload = {"candidates": [{"content": {"parts": [{"text": "Hello, "}, {"text": "world"}]}}]}
    assert extract_text(payload) == "Hello, world"


def test_extract_text_skips_non_text_parts():
    payload = {
        "candidates": [
            {"content": {"parts": [{"inlineData": {"data": "AAAA"}}, {"text": "caption"}]}}
        ]
    }
    assert extract_text(payload) == "caption"


def test_extract_text_handles_missing_structure():
    assert extract_text(None) == ""
    assert extract_text({}) == ""
    assert extract_text({"candidates": []}) == ""
    assert extract_text({"candidates": [{"content": {}}]}) == ""


def test_extract_inline_image():
    data = base64.b64encode(b"\x89PNG").decode("ascii")
    payload = {
        "candidates": [
            {
                "content": {
                    "parts": [
                        {"text": "here you go"},
                        {"inlineData": {"mimeType": "image/jpeg", "data": data}},
                    ]
                }
            }
        ]
    }
    assert extract_inline_image(payload) == b"\x89PNG"
    assert extract_inline_image_b64(payload) == (data, "image/jpeg")
    assert to_data_uri(data, "image/jpeg") == f"data:image/jpeg;base64,{data}"


def test_extract_inline_image_absent_or_invalid():
    assert extract_inline_image({"candidates": [{"content": {"parts": [{"text": "x"}]}}]}) is None
    bad = {"candidates": [{"content": {"parts": [{"inlineData": {"data": "!!not-base64!!"}}]}}]}
    assert extract_inline_image(bad) is None


def test_strip_code_fence():
    assert strip_code_fence("```html\n<h1>T</h1>\n```") == "<h1>T</h1>"
    assert strip_code_fence("```json\n[1]\n```\n") == "[1]"
    assert strip_code_fence("<p>plain</p>") == "<p>plain</p>"
    assert strip_code_fence("") == ""


def test_chat_completion_envelope():
    envelope = as_chat_completion("[]")
    assert extract_chat_text(envelope) == "[]"
    assert extract_chat_text({"choices": []}) == ""


def test_to_chat_messages_flattens_gemini_request():
    body = {
        "systemInstruction": {"parts": [{"text": "Be brief."}, {"text": "Cite sources."}]},
        "contents": [{"parts": [{"text": "First"}, {"inlineData": {}}]}, "Second"],
    }
    assert to_chat_messages(body) == [
        {"role": "system", "content": "Be brief.\nCite sources."},
        {"role": "user", "content": "First\nSecond"},
    ]
    assert to_chat_messages({"contents": []}) == [{"role": "user", "content": "Continue."}]
    assert as_gemini_text_payload("hi") == gemini_text("hi")
