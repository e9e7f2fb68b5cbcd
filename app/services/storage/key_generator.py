from uuid import UUID
from pathlib import Path
import re


class KeyGenerator:
    @staticmethod
    def _safe_filename(filename: str) -> str:
        # Simple sanitization
        s = re.sub(r"[^a-zA-Z0-9_.-]", "_", filename)
        return s

    @staticmethod
    def generated_documents_key(user_id: UUID, loan_id: UUID) -> str:
        # Deterministic so a retried upload overwrites instead of duplicating.
        if not user_id or not loan_id:
            raise ValueError("user_id and loan_id are required")
        return f"users/{user_id}/loans/{loan_id}/generated/documents.zip"

    @staticmethod
    def upload_slot_key(user_id: UUID, loan_id: UUID, slot: str, upload_id: str, filename: str) -> str:
        ext = Path(KeyGenerator._safe_filename(filename or "")).suffix.lower()
        return f"users/{user_id}/loans/{loan_id}/uploads/{slot}/{upload_id}{ext}"

    @staticmethod
    def extract_key(user_id: UUID, loan_id: UUID, upload_id: str, filename: str) -> str:
        safe_filename = KeyGenerator._safe_filename(filename or "extract")
        return f"users/{user_id}/loans/{loan_id}/extracts/{upload_id}/{safe_filename}"
