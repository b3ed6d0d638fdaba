"""Inline keyboard markup helpers."""


def button(text: str, callback_data: str) -> dict:
    return {"text": text, "callback_data": callback_data}


def inline_keyboard(buttons: list[dict], columns: int = 2) -> dict:
    """Lay buttons out in rows of `columns`."""
    rows = [buttons[i:i + columns] for i in range(0, len(buttons), columns)]
    return {"inline_keyboard": rows}
