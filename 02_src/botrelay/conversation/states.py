"""Conversation states of the built-in manager bot."""

from enum import Enum


class ManagerState(str, Enum):
    """Wizard steps; selector states wait for a button press."""

    IDLE = "idle"
    NEWBOT_NAME = "newbot_name"
    NEWBOT_USERNAME = "newbot_username"
    NEWBOT_DESC = "newbot_desc"
    EDITBOT_SELECT = "editbot_select"
    EDITBOT_FIELD = "editbot_field"
    EDITBOT_VALUE = "editbot_value"
    DELETEBOT_CONFIRM = "deletebot_confirm"
    TOKEN_SELECT = "token_select"
    SETCMD_SELECT = "setcmd_select"
    SETCMD_INPUT = "setcmd_input"
    SETDESC_SELECT = "setdesc_select"
    SETDESC_INPUT = "setdesc_input"
    LEARN_KEYWORD = "learn_keyword"
    LEARN_RESPONSE = "learn_response"
    FORGET_SELECT = "forget_select"
