"""Import all models so SQLAlchemy metadata knows about them."""
from foldly.models.base import Base
from foldly.models.user import User
from foldly.models.workspace import Workspace
from foldly.models.link import Link
from foldly.models.folder import Folder
from foldly.models.batch import Batch
from foldly.models.file_record import FileRecord
from foldly.models.job import Job

__all__ = [
    "Base",
    "User", "Workspace", "Link", "Folder", "Batch", "FileRecord", "Job",
]
