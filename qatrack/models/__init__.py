"""
QA Track
Shared SQLAlchemy handle and domain models.

    - storage: StorageBlob, the key/value table behind the "sql" storage backend
    - testing: TestStep, TestCase, TestSuite, User records and domain constants
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
