def notification(message: str, type: str = "success") -> dict:
    """Transient, auto-dismissing message shown by the client (success or error)."""
    return {"type": type, "message": message}


def error_detail(message: str) -> dict:
    """HTTPException detail carrying an error notification."""
    return {"notification": notification(message, "error")}
