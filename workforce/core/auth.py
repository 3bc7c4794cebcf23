import secrets

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from workforce.container import Container
from workforce.core.exceptions import StoreError

reusable_oauth2 = HTTPBearer()
cron_bearer = HTTPBearer(auto_error=False)


def get_container(request: Request) -> Container:
    return request.app.state.container


async def get_current_user(
    container: Container = Depends(get_container),
    token: HTTPAuthorizationCredentials = Depends(reusable_oauth2),
):
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    settings = container.settings
    try:
        payload = jwt.decode(
            token.credentials,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )
        employee_id = payload.get("sub")
        if employee_id is None:
            raise credentials_exception
        employee_id = int(employee_id)
    except (JWTError, ValueError):
        raise credentials_exception

    try:
        employee = await container.directory.get(employee_id)
    except StoreError as e:
        raise HTTPException(500, str(e))
    if employee is None or employee.get("status") != "active":
        raise credentials_exception
    return employee


async def get_current_admin(
    current_user=Depends(get_current_user)
):
    if current_user.get("role") != "admin":
        raise HTTPException(403, "Admin access required")
    return current_user


async def verify_cron_secret(
    container: Container = Depends(get_container),
    token: HTTPAuthorizationCredentials = Depends(cron_bearer),
):
    expected = container.settings.CRON_SECRET
    # an unset secret locks the endpoints rather than opening them
    if not expected or token is None or not secrets.compare_digest(token.credentials, expected):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Unauthorized")
