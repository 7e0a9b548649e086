# expense_portal/errors.py
from fastapi import HTTPException, status
from typing import Optional


class ExpensePortalError(HTTPException):
    """Base exception for every failure the HTTP layer turns into a JSON error envelope.

    ``detail`` is the message that is safe to show to the end user. ``provider_message``
    carries upstream diagnostics for operators and is only ever logged.
    """

    def __init__(self, status_code: int, detail: str, provider_message: Optional[str] = None):
        self.provider_message = provider_message
        super().__init__(status_code=status_code, detail=detail)

    @property
    def message(self) -> str:
        return str(self.detail)


class Unauthenticated(ExpensePortalError):
    """No session, no tokens, or tokens that could not be refreshed. The user must log in."""

    def __init__(self, detail: str = "Usuário não autenticado. Faça login novamente."):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class AuthExchangeError(ExpensePortalError):
    """The authorization code could not be exchanged for tokens."""

    def __init__(
        self,
        detail: str = "Falha na autenticação com o Google.",
        provider_message: Optional[str] = None
    ):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            provider_message=provider_message
        )


class TokenInvalidError(ExpensePortalError):
    """The provider rejected the access token (expired or revoked).

    Handled inside the lifecycle manager; only reaches the HTTP layer as ``Unauthenticated``.
    """

    def __init__(self, provider_message: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token de acesso inválido.",
            provider_message=provider_message
        )


class RefreshFailedError(ExpensePortalError):
    """The refresh token is missing, invalid or revoked. Terminal for the session."""

    def __init__(self, provider_message: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Sessão expirada. Faça login novamente.",
            provider_message=provider_message
        )


class ProviderUnavailableError(ExpensePortalError):
    """Google could not be reached or answered with a server error. Session state is left untouched."""

    def __init__(self, provider_message: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Serviço do Google indisponível no momento. Tente novamente.",
            provider_message=provider_message
        )


class MissingReceipt(ExpensePortalError):
    def __init__(self, detail: str = "Nenhum comprovante foi enviado."):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class InvalidExpense(ExpensePortalError):
    """Client-correctable problem with the submitted form fields."""

    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class ServerMisconfigured(ExpensePortalError):
    """A deployment defect (missing folder id, OAuth client, session store...). Not user-correctable."""

    def __init__(
        self,
        detail: str = "Servidor não configurado corretamente. Contate o administrador.",
        provider_message: Optional[str] = None
    ):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            provider_message=provider_message
        )


class UploadFailed(ExpensePortalError):
    def __init__(
        self,
        detail: str = "Não foi possível enviar o comprovante para o Google Drive.",
        provider_message: Optional[str] = None
    ):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            provider_message=provider_message
        )


class SessionPersistenceError(ExpensePortalError):
    """The session store could not be read or did not confirm a write."""

    def __init__(self, provider_message: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Não foi possível acessar a sessão. Tente novamente.",
            provider_message=provider_message
        )
