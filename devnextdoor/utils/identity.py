SEPARATOR = "_"


def canonical_id(user_a: str, user_b: str) -> str:
    """Order-independent conversation key for two participants.

    The separator is not escaped, so ``("a_b", "c")`` and ``("a", "b_c")``
    map to the same key. Usernames are expected not to rely on this.
    """
    if user_a < user_b:
        return f"{user_a}{SEPARATOR}{user_b}"
    return f"{user_b}{SEPARATOR}{user_a}"
