from fastapi import Header, HTTPException, Request
from jose import JWTError, jwt


def verify_token(request: Request, authorization: str = Header(None)) -> str:
    """Return the user id (``sub``) of a valid HS256 bearer token."""
    secret = request.app.state.settings.jwt_secret
    try:
        scheme, token = (authorization or "").split()
        if scheme.lower() != "bearer" or not secret:
            raise ValueError("unsupported scheme")
        claims = jwt.decode(token, secret, algorithms=["HS256"])
    except (ValueError, JWTError):
        raise HTTPException(status_code=401, detail="Invalid or missing token")

    user_id = claims.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid or missing token")
    return str(user_id)
