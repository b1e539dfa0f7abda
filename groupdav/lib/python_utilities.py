def to_wire(text):
    """Encode a body for the wire, with CRLF line endings"""
    if text is None:
        return None
    if isinstance(text, str):
        text = bytes(text, "utf-8")
    text = text.replace(b"\n", b"\r\n")
    text = text.replace(b"\r\r\n", b"\r\n")
    return text


def to_normal_str(text):
    """
    Make sure we return a normal string, decoding bytes if needed.
    Line endings are left alone, the text record codec takes care of
    stray carriage returns itself.
    """
    if text is None:
        return text
    if not isinstance(text, str):
        text = text.decode("utf-8")
    return text
