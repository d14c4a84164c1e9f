import hmac

from fastapi import Header, HTTPException

from photostock.config import API_TOKEN


def verify_api_token(authorization: str | None = Header(default=None)):
    if API_TOKEN and authorization and authorization.startswith("Bearer "):
        supplied = authorization.removeprefix("Bearer ").strip()
        if hmac.compare_digest(supplied.encode("utf-8"), API_TOKEN.encode("utf-8")):
            return
    raise HTTPException(status_code=401, detail="Unauthorized")
