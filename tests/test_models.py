import pytest

from exceptions import ContentFetchError
from models import PrefetchSlot, RoundContent, RoundState, RoundStatus, level_for_score, sanitize_answer


def test_level_for_score():
    assert [level_for_score(s) for s in range(5)] == [1] * 5
    assert [level_for_score(s) for s in range(5, 10)] == [2] * 5
    assert level_for_score(10) == 3


def test_sanitized_answer():
    st = RoundState(answer="Die Hard")
    assert st.sanitized_answer == "DieHard"
    assert sanitize_answer(" The  Big\tLebowski ") == "TheBigLebowski"


def test_round_content_from_dict():
    c = RoundContent.from_dict({"concept": " Jaws ", "explanation": "A fin.", "imageUrl": "data:image/png;base64,AA"})
    assert c == RoundContent("Jaws", "A fin.", "data:image/png;base64,AA")
    assert RoundContent.from_dict({"concept": "Up", "explanation": "x", "image_url": "u"}).image_url == "u"


@pytest.mark.parametrize("payload", [
    {"concept": "", "explanation": "x", "imageUrl": "u"},
    {"concept": "Jaws", "imageUrl": "u"},
    {"concept": "Jaws", "explanation": "x"},
    ["Jaws"],
])
def test_round_content_rejects_invalid(payload):
    with pytest.raises(ContentFetchError):
        RoundContent.from_dict(payload)


def test_fresh_state_is_idle():
    st = RoundState()
    assert st.status is RoundStatus.IDLE
    assert (st.score, st.level, st.time_left) == (0, 1, 30)
    assert not st.round_over


def test_prefetch_slot():
    slot = PrefetchSlot()
    assert not slot.occupied
    slot.content = RoundContent("Jaws", "x", "u")
    assert slot.occupied and slot.ready
    slot.clear()
    assert not slot.occupied and not slot.ready
