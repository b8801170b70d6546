"""Database initialization script."""
import logging
import os
import sys

from pymongo import ASCENDING, MongoClient
from pymongo.errors import CollectionInvalid

# Add project root directory to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from resumable_upload.config import settings
from resumable_upload.services.db_service import CHUNKS_COLLECTION, SESSIONS_COLLECTION
from resumable_upload.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)


def init_database():
    """Initialize ledger collections and indexes."""
    client = MongoClient(settings.mongodb_url)
    db = client[settings.mongo_db_name]

    init_upload_sessions_collection(db)
    init_upload_chunks_collection(db)

    logger.info("Database initialization completed successfully!")
    client.close()


def init_upload_sessions_collection(db):
    """Initialize upload_sessions collection with schema validation."""
    validation = {
        '$jsonSchema': {
            'bsonType': 'object',
            'required': ['file_name', 'file_size', 'chunk_size', 'total_chunks', 'created_at'],
            'properties': {
                'file_name': {
                    'bsonType': 'string',
                    'description': 'File name must be a string and is required'
                },
                'file_size': {
                    'bsonType': ['int', 'long'],
                    'minimum': 1,
                    'description': 'File size must be a positive integer'
                },
                'chunk_size': {
                    'bsonType': ['int', 'long'],
                    'minimum': 1,
                    'description': 'Chunk size must be a positive integer'
                },
                'total_chunks': {
                    'bsonType': ['int', 'long'],
                    'minimum': 1,
                    'description': 'Total chunks must be a positive integer'
                },
                'completed_at': {
                    'bsonType': ['date', 'null'],
                    'description': 'Completion time is set once by verification'
                }
            }
        }
    }

    try:
        db.create_collection(SESSIONS_COLLECTION)
    except CollectionInvalid:
        pass  # Collection already exists

    db.command({
        'collMod': SESSIONS_COLLECTION,
        'validator': validation,
        'validationLevel': 'strict'
    })

    db[SESSIONS_COLLECTION].create_index([('created_at', ASCENDING)], name='session_created_at')


def init_upload_chunks_collection(db):
    """Initialize upload_chunks collection with schema validation."""
    validation = {
        '$jsonSchema': {
            'bsonType': 'object',
            'required': ['session_id', 'chunk_index', 'completed'],
            'properties': {
                'session_id': {
                    'bsonType': 'string',
                    'description': 'Session reference must be a string'
                },
                'chunk_index': {
                    'bsonType': 'int',
                    'minimum': 0,
                    'description': 'Chunk index must be a non-negative integer'
                },
                'completed': {
                    'bsonType': 'bool',
                    'description': 'completed must be a boolean'
                }
            }
        }
    }

    try:
        db.create_collection(CHUNKS_COLLECTION)
    except CollectionInvalid:
        pass

    db.command({
        'collMod': CHUNKS_COLLECTION,
        'validator': validation,
        'validationLevel': 'strict'
    })

    db[CHUNKS_COLLECTION].create_index(
        [('session_id', ASCENDING), ('chunk_index', ASCENDING)],
        unique=True,
        name='chunk_session_index_unique'
    )
    db[CHUNKS_COLLECTION].create_index(
        [('session_id', ASCENDING), ('completed', ASCENDING)],
        name='chunk_session_completed'
    )


if __name__ == '__main__':
    init_database()
