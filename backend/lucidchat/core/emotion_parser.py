"""Emotion parser - reads stage directions out of generated dialogue.

The character is prompted to open every line with a parenthesised stage
direction, e.g. ``(얼굴을 붉히며) 정말요?``. The first direction decides the
emotion tag; every direction is stripped from the text kept for TTS and
history display.
"""

import re
from typing import NamedTuple

from lucidchat.models.enums import EmotionTag

FIRST_DIRECTION = re.compile(r"\(([^)]{1,60}?)\)")
ANY_DIRECTION = re.compile(r"\([^)]*\)")
EXTRA_SPACES = re.compile(r"[ \t]{2,}")

# Checked in order: sneers and nervous laughter contain the laugh stem,
# so the stronger emotions go first and JOY goes last.
EMOTION_KEYWORDS: list[tuple[EmotionTag, tuple[str, ...]]] = [
    (EmotionTag.DISGUST, (
        "경멸", "한심", "비웃", "코웃음", "쳇", "흥", "싸늘", "차갑", "혐오", "깔보",
        "도끼눈", "disgust", "sneer", "scoff",
    )),
    (EmotionTag.PANIC, (
        "당황", "허둥", "땀", "삐질", "어버버", "곤란", "난처", "동공지진", "횡설수설",
        "말문", "멈칫", "동요", "panic", "flustered",
    )),
    (EmotionTag.RELAX, (
        "편안", "나른", "하품", "기지개", "턱을괴", "턱괴", "엎드", "누워", "안도", "차분",
        "여유", "느긋", "relax", "yawn", "calm",
    )),
    (EmotionTag.ANGRY, (
        "화내", "화를", "버럭", "짜증", "노려", "째려", "찡그", "인상", "주먹", "소리치",
        "윽박", "분노", "씩씩", "angry", "glare", "frown",
    )),
    (EmotionTag.SAD, (
        "울", "눈물", "슬퍼", "슬픈", "훌쩍", "흑흑", "흐느", "침울", "우울", "상처", "글썽",
        "뚝뚝", "시무룩", "한숨", "sad", "cry", "tear", "sigh",
    )),
    (EmotionTag.SHY, (
        "붉히", "빨개", "홍당무", "수줍", "부끄", "달아오", "심쿵", "두근", "피하", "머뭇",
        "더듬", "blush", "shy", "fidget",
    )),
    (EmotionTag.SURPRISED, (
        "놀라", "놀란", "깜짝", "헉", "헙", "동공", "눈이커", "경악", "비명", "소스라",
        "surprise", "gasp", "startle",
    )),
    (EmotionTag.JOY, (
        "웃", "미소", "활짝", "방긋", "깔깔", "킥킥", "하하", "흐뭇", "기뻐", "기쁜", "즐거",
        "행복", "싱글", "생글", "smil", "laugh", "grin", "giggl", "happ",
    )),
]


class ParsedReply(NamedTuple):
    stage_direction: str
    emotion_tag: EmotionTag
    clean_text: str


def parse(raw: str | None) -> ParsedReply:
    if not raw or not raw.strip():
        return ParsedReply("", EmotionTag.NEUTRAL, "")

    direction = extract_first_direction(raw)
    return ParsedReply(direction, classify(direction), strip_directions(raw))


def extract_first_direction(raw: str) -> str:
    match = FIRST_DIRECTION.search(raw)
    return match.group(1) if match else ""


def strip_directions(raw: str) -> str:
    """Remove every parenthesised span; text without any is returned as-is."""
    if not ANY_DIRECTION.search(raw):
        return raw
    stripped = ANY_DIRECTION.sub("", raw)
    return EXTRA_SPACES.sub(" ", stripped).strip()


def classify(direction: str) -> EmotionTag:
    if not direction or not direction.strip():
        return EmotionTag.NEUTRAL

    normalized = re.sub(r"[\s.,]", "", direction).lower()
    for tag, keywords in EMOTION_KEYWORDS:
        if any(keyword in normalized for keyword in keywords):
            return tag
    return EmotionTag.NEUTRAL
