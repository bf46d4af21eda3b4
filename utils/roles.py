DEFAULT_ROLES = ["CLIENT", "ADMIN"]
ALLOWED_DISPLAY_ROLES = set(DEFAULT_ROLES)


def filter_role_names(roles):
    names = []
    for role in roles or []:
        name = role if isinstance(role, str) else getattr(role, "name", None)
        if name in ALLOWED_DISPLAY_ROLES:
            names.append(name)
    return names
