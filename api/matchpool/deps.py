from fastapi import Header, HTTPException

from . import config


def validate_admin_token(token: str | None, admin_token: str | None) -> None:
    if not admin_token or not token or token != admin_token:
        raise HTTPException(status_code=401, detail="Invalid admin token")


def require_admin(x_admin_token: str | None = Header(default=None)) -> None:
    validate_admin_token(x_admin_token, config.ADMIN_TOKEN)


def parse_actor_member_id(raw_actor_member_id: str | None) -> str:
    if not raw_actor_member_id:
        raise HTTPException(status_code=400, detail="X-Actor-Member-Id is required")
    value = raw_actor_member_id.strip()
    if not value:
        raise HTTPException(status_code=400, detail="X-Actor-Member-Id is required")
    if len(value) > 128:
        raise HTTPException(status_code=400, detail="X-Actor-Member-Id too long")
    return value


def require_actor_member(x_actor_member_id: str | None = Header(default=None)) -> str:
    return parse_actor_member_id(x_actor_member_id)
