"""
Dependencias de autenticación para FastAPI.

El token lo emite el servicio de identidad. Dos formas:
- token de contexto (type=context): trae location_id y user_role.
- token de acceso (type=access): la ubicación se elige con el header
  X-Location-ID y el rol sale de la membresía del operador en esa ubicación.
"""
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from uuid import UUID

from app.common.validators import normalize_location_id
from app.database.database import get_db
from app.modules.auth.schemas import CallerContext
from app.modules.auth.service import UserDirectory
from app.modules.auth.utils import verify_token

# Security scheme
security = HTTPBearer(auto_error=False)

LOCATION_HEADER = "X-Location-ID"

CASHIER_ROLES = ["owner", "admin", "seller", "cashier"]
AUDIT_ROLES = ["owner", "admin", "accountant"]
ANY_ROLE = ["owner", "admin", "seller", "cashier", "accountant", "viewer"]


class AuthDependencies:
    """Dependencias de autenticación reutilizables."""

    @staticmethod
    def get_caller_context(
        request: Request,
        credentials: HTTPAuthorizationCredentials = Depends(security),
        db: Session = Depends(get_db)
    ) -> CallerContext:
        """
        Obtener actor, ubicación y rol de quien llama.
        Requiere token de contexto o token de acceso + X-Location-ID.
        """
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No se pudieron validar las credenciales",
            headers={"WWW-Authenticate": "Bearer"},
        )
        if credentials is None:
            raise credentials_exception

        payload = verify_token(credentials.credentials)
        try:
            user_id = UUID(payload.get("sub") or "")
        except ValueError:
            raise credentials_exception
        token_type: str = payload.get("type", "access")

        user = UserDirectory(db).get_active_user(user_id)
        if user is None:
            raise credentials_exception

        if token_type == "context":
            # Token de contexto ya tiene la ubicación
            location_raw = payload.get("location_id")
            user_role = payload.get("user_role")
        elif token_type == "access":
            location_raw = request.headers.get(LOCATION_HEADER)
            user_role = None
        else:
            raise credentials_exception

        if not location_raw:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Se requiere seleccionar una ubicación ({LOCATION_HEADER})"
            )
        try:
            location_id = normalize_location_id(location_raw)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="ID de ubicación inválido"
            )

        if token_type == "access":
            membership = next(
                (ul for ul in user.user_locations
                 if ul.location_id == location_id and ul.is_active),
                None
            )
            if membership is None:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="No tienes acceso a esta ubicación"
                )
            user_role = membership.role

        if not user_role:
            raise credentials_exception

        return CallerContext(
            actor_id=user.id,
            location_id=location_id,
            role=user_role,
            full_name=user.full_name,
        )

    @staticmethod
    def require_role(allowed_roles: list[str]):
        """
        Dependencia para requerir roles específicos.
        """
        def role_checker(caller: CallerContext = Depends(AuthDependencies.get_caller_context)):
            if caller.role not in allowed_roles:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Se requiere uno de estos roles: {', '.join(allowed_roles)}"
                )
            return caller
        return role_checker


# Instancias de dependencias
require_cashier = AuthDependencies.require_role(CASHIER_ROLES)
require_auditor = AuthDependencies.require_role(AUDIT_ROLES)
require_any_role = AuthDependencies.require_role(ANY_ROLE)
