import re
from typing import List, Tuple

from flask import current_app, has_app_context

_RULES = [
    (re.compile(r"[A-Z]"), "Password must include at least 1 uppercase letter",
     "يجب أن تحتوي كلمة المرور على حرف كبير واحد على الأقل"),
    (re.compile(r"[a-z]"), "Password must include at least 1 lowercase letter",
     "يجب أن تحتوي كلمة المرور على حرف صغير واحد على الأقل"),
    (re.compile(r"\d"), "Password must include at least 1 number",
     "يجب أن تحتوي كلمة المرور على رقم واحد على الأقل"),
    (re.compile(r"[^A-Za-z0-9]"), "Password must include at least 1 symbol",
     "يجب أن تحتوي كلمة المرور على رمز واحد على الأقل"),
]


def _limits() -> Tuple[int, int]:
    if has_app_context():
        cfg = current_app.config
        return int(cfg.get("PASSWORD_MIN_LEN", 12)), int(cfg.get("PASSWORD_MAX_LEN", 128))
    return 12, 128


def validate_password(pw: str, lang: str = "en") -> Tuple[bool, List[str]]:
    """Returns (valid, errors) with errors in ``lang`` (``en`` or ``ar``)."""
    ar = lang == "ar"
    if not isinstance(pw, str):
        return False, ["كلمة المرور يجب أن تكون نصاً" if ar else "Password must be a string"]

    min_len, max_len = _limits()
    errors: List[str] = []
    if len(pw) < min_len:
        errors.append(f"يجب ألا تقل كلمة المرور عن {min_len} حرفاً" if ar
                      else f"Password must be at least {min_len} characters")
    if len(pw) > max_len:
        errors.append(f"يجب ألا تزيد كلمة المرور عن {max_len} حرفاً" if ar
                      else f"Password must be at most {max_len} characters")

    for pattern, en_text, ar_text in _RULES:
        if not pattern.search(pw):
            errors.append(ar_text if ar else en_text)

    return not errors, errors


def password_strength(pw: str) -> dict:
    if not isinstance(pw, str):
        return {"score": 0, "valid": False, "feedback": ["Password must be a string"]}

    valid, errors = validate_password(pw)
    min_len, _ = _limits()
    variety = sum(1 for pattern, _, _ in _RULES if pattern.search(pw))

    score = 0
    if len(pw) >= min_len:
        score += 1
    if len(pw) >= min_len + 4:
        score += 1
    if variety >= 3:
        score += 1
    if variety == len(_RULES) and len(pw) >= min_len:
        score += 1

    feedback = errors
    if valid:
        feedback = []
        if len(pw) < min_len + 4:
            feedback.append("Use a longer passphrase for extra strength")

    return {"score": min(score, 4), "valid": valid, "feedback": feedback}
