"""Cleanup of free-text user input before it reaches the database."""


def sanitize_user_input(text: str, max_length: int = 10000) -> str:
    """
    Drop null bytes and control characters (newlines and tabs survive)
    and cut the text to `max_length`.
    """
    if not text:
        return ""

    if len(text) > max_length:
        text = text[:max_length]

    text = text.replace('\x00', '')
    return ''.join(char for char in text if ord(char) >= 32 or char in '\n\r\t')
