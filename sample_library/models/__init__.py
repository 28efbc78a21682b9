from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


# Register every mapped table on Base.metadata.
from sample_library.models.taxonomy import Category, Manufacturer, Subcategory  # noqa: E402
from sample_library.models.folder import Folder  # noqa: E402
from sample_library.models.sample_pack import SamplePack  # noqa: E402
from sample_library.models.audio_file import AudioFile  # noqa: E402

__all__ = [
    "AudioFile",
    "Base",
    "Category",
    "Folder",
    "Manufacturer",
    "SamplePack",
    "Subcategory",
]
