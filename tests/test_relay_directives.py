from __future__ import annotations

from relay.directives import SpeakDirective, encode_speak


def test_encode_speak_defaults():
    assert encode_speak("Hello there", lang="en-US") == {
        "type": "text",
        "token": "Hello there",
        "last": True,
        "lang": "en-US",
        "interruptible": True,
        "preemptible": True,
    }


def test_encode_speak_flags_pass_through():
    message = encode_speak("Please hold", lang="de-DE", last=False, interruptible=False, preemptible=False)
    assert message["last"] is False
    assert message["interruptible"] is False
    assert message["preemptible"] is False
    assert message["lang"] == "de-DE"


def test_encode_speak_accepts_empty_text():
    assert encode_speak("", lang="en-US")["token"] == ""


def test_directive_model_is_text_type():
    assert SpeakDirective(token="x", lang="en-US").type == "text"
