"""Envelope serialization shared by long polling and webhook delivery."""

import json

from ..models import Update, User


def sender_for(update: Update, user: User | None) -> dict:
    """The 'from' object; bare id when the user is unknown."""
    if user is not None:
        return user.to_sender()
    chat_id = update.chat_id
    return {"id": int(chat_id) if str(chat_id).isdigit() else chat_id}


def build_envelope(update: Update, user: User | None = None, include_bot_id: bool = False) -> dict:
    """Build the consumer-facing envelope of an inbound update.

    {update_id, update_type, bot_id?, message: {message_id, from, chat, date, text},
     command?, callback_query?, media?}
    """
    sender = sender_for(update, user)
    envelope: dict = {
        "update_id": update.id,
        "update_type": update.update_type,
    }
    if include_bot_id:
        envelope["bot_id"] = update.bot_id

    envelope["message"] = {
        "message_id": update.id,
        "from": sender,
        "chat": {"id": update.chat_id, "type": update.chat_type},
        "date": int(update.created_at.timestamp()) if update.created_at else 0,
        "text": update.text,
    }

    if update.is_command:
        envelope["command"] = {"name": update.command_name, "args": update.command_args or ""}
    if update.callback_data:
        envelope["callback_query"] = {
            "id": str(update.id),
            "from": sender,
            "data": update.callback_data,
        }
    if update.media is not None:
        envelope["media"] = update.media.to_dict()

    return envelope


def canonical_json(payload: dict) -> bytes:
    """Deterministic encoding; the signature is computed over exactly these bytes."""
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")
