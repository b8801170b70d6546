"""Service modules: session ledger, grant issuer, completion verifier and database."""
from resumable_upload.services.db_service import DatabaseService, db_service
from resumable_upload.services.ledger_service import MongoSessionLedger, SessionLedger, SessionStatus
from resumable_upload.services.minio_service import MinioService, UploadGrant, build_object_key
from resumable_upload.services.verification_service import VerificationResult, VerificationService

__all__ = [
    "DatabaseService",
    "db_service",
    "MongoSessionLedger",
    "SessionLedger",
    "SessionStatus",
    "MinioService",
    "UploadGrant",
    "build_object_key",
    "VerificationResult",
    "VerificationService",
]
