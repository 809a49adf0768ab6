"""
Session token handling.

Users sign in at the external identity provider; the bridge issues a signed
token that this service verifies on every request.
"""

from typing import Optional
from uuid import UUID

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from app.core.config import settings


class SessionManager:
    """Signs and verifies session tokens."""
    
    def __init__(self, secret_key: Optional[str] = None, max_age: Optional[int] = None):
        self.serializer = URLSafeTimedSerializer(secret_key or settings.SECRET_KEY, salt="session")
        self.max_age = max_age or settings.SESSION_MAX_AGE_SECONDS
    
    def create_session_token(self, user_id: UUID, email: str, role: str) -> str:
        """
        Create a signed session token.
        
        Args:
            user_id: User UUID
            email: User email
            role: User role
            
        Returns:
            Signed token string
        """
        data = {
            "user_id": str(user_id),
            "email": email,
            "role": role,
        }
        return self.serializer.dumps(data)
    
    def verify_session_token(self, token: str) -> Optional[dict]:
        """
        Verify and decode a session token.
        
        Returns:
            Dict with user_id, email, role if valid, None otherwise
        """
        try:
            data = self.serializer.loads(token, max_age=self.max_age)
        except (BadSignature, SignatureExpired):
            return None
        return data if isinstance(data, dict) else None


# Global session manager instance
session_manager = SessionManager()
