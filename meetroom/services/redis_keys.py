# meetroom/services/redis_keys.py

MEETING_KEY = "meeting:{meeting_id}"
MEETINGS_BY_CREATOR_KEY = "meetings:by-creator:{user_id}"
CHAT_KEY = "chat:{meeting_id}"


def meeting_key(meeting_id: str) -> str:
    return MEETING_KEY.format(meeting_id=meeting_id)


def meetings_by_creator_key(user_id: str) -> str:
    return MEETINGS_BY_CREATOR_KEY.format(user_id=user_id)


def chat_key(meeting_id: str) -> str:
    return CHAT_KEY.format(meeting_id=meeting_id)
