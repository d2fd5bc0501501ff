from app.modules.users import UserIdentity


def make_user(uid: str) -> UserIdentity:
    return UserIdentity(uid=uid, display_name=uid.title(), photo_url=f"https://img/{uid}.png")


def auth_headers(uid: str) -> dict:
    return {"X-User-Id": uid, "X-User-Name": uid.title()}
