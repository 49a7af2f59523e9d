from __future__ import annotations

SENSITIVE_KEYS = {
    "password",
    "session",
    "key",
    "access_token",
    "token",
}


def redact_value_for_log(value: str | int | None, mask: str = "***") -> str:
    if value is None:
        return ""
    return mask


def mask_secret(value: str | None) -> str:
    """用于日志输出的 key/session 脱敏：只保留首尾少量字符。"""
    if not value:
        return ""
    if len(value) <= 12:
        return value[:2] + "***"
    return f"{value[:6]}...{value[-4:]}"


def redact_payload_for_log(payload: dict | None, mask: str = "***") -> dict:
    """请求体脱敏：仅修改日志展示用的副本，不影响真实请求。"""
    if not isinstance(payload, dict):
        return {}
    redacted = {}
    for key, value in payload.items():
        if str(key).lower() in SENSITIVE_KEYS:
            redacted[key] = redact_value_for_log(value, mask)
        else:
            redacted[key] = value
    return redacted
