"""
Raw-file storage for uploaded spreadsheets.

``LocalStorage`` keeps the bytes under ``UPLOAD_FOLDER``; ``CloudinaryStorage``
pushes them to Cloudinary as ``raw`` resources. Both return a ``StoredObject``
describing where the bytes went, which is persisted on the ``UploadedFile`` row
so the copy can be removed when the file is deleted.
"""

import io
import logging
import os
import re
import time
import uuid
from dataclasses import dataclass
from typing import Optional

import cloudinary
import cloudinary.uploader
from flask import current_app
from werkzeug.utils import secure_filename


class StorageError(Exception):
    """Raised when the object store rejects an operation"""


@dataclass
class StoredObject:
    backend: str
    filename: str
    path: str
    public_id: Optional[str] = None
    size: int = 0


def unique_filename(original_name):
    """``<timestamp>-<random>-<secure name>`` so concurrent uploads never collide"""
    safe_name = secure_filename(original_name) or 'upload'
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{safe_name}"


class LocalStorage:
    name = 'local'

    def __init__(self, upload_folder):
        self.upload_folder = upload_folder
        os.makedirs(self.upload_folder, exist_ok=True)

    def save(self, content, original_name):
        filename = unique_filename(original_name)
        file_path = os.path.join(self.upload_folder, filename)
        with open(file_path, 'wb') as f:
            f.write(content)
        return StoredObject(backend=self.name, filename=filename, path=file_path, size=len(content))

    def delete(self, path, public_id=None):
        try:
            if path and os.path.exists(path):
                os.remove(path)
                return True
        except OSError as e:
            logging.warning(f"Could not delete file {path}: {str(e)}")
        return False


class CloudinaryStorage:
    name = 'cloudinary'

    def __init__(self, folder='excel-files', cloudinary_url=None):
        self.folder = folder
        if cloudinary_url:
            cloudinary.config(cloudinary_url=cloudinary_url, secure=True)

    def save(self, content, original_name):
        base_name = re.sub(r'[^a-zA-Z0-9_-]', '_', os.path.splitext(original_name)[0]) or 'upload'
        public_id = f"{int(time.time() * 1000)}_{base_name}"
        extension = original_name.rsplit('.', 1)[-1].lower() if '.' in original_name else 'xlsx'
        try:
            result = cloudinary.uploader.upload(
                io.BytesIO(content),
                folder=self.folder,
                public_id=public_id,
                resource_type='raw',
                format=extension,
                overwrite=True,
                invalidate=True,
            )
        except Exception as e:
            raise StorageError(f"Cloudinary upload failed: {str(e)}")

        return StoredObject(
            backend=self.name,
            filename=unique_filename(original_name),
            path=result.get('secure_url'),
            public_id=result.get('public_id'),
            size=result.get('bytes', len(content)),
        )

    def delete(self, path, public_id=None):
        if not public_id:
            return False
        try:
            result = cloudinary.uploader.destroy(public_id, resource_type='raw')
        except Exception as e:
            logging.warning(f"Cloudinary delete failed for {public_id}: {str(e)}")
            return False
        return result.get('result') == 'ok'


def get_storage(backend=None):
    """Storage configured for the current app, or the one named by ``backend``"""
    config = current_app.config
    backend = backend or config['STORAGE_BACKEND']
    if backend == CloudinaryStorage.name:
        return CloudinaryStorage(config['CLOUDINARY_FOLDER'], config.get('CLOUDINARY_URL'))
    return LocalStorage(config['UPLOAD_FOLDER'])


def store_upload(content, original_name):
    """Store the bytes with the configured backend, falling back to local disk"""
    storage = get_storage()
    try:
        return storage.save(content, original_name)
    except StorageError as e:
        if storage.name == LocalStorage.name:
            raise
        logging.warning(f"{str(e)}; keeping {original_name} on local disk instead")
        return get_storage(LocalStorage.name).save(content, original_name)


def stored_object(uploaded_file):
    """The ``StoredObject`` an ``UploadedFile`` row points at"""
    return StoredObject(
        backend=uploaded_file.storage_backend,
        filename=uploaded_file.filename,
        path=uploaded_file.storage_path,
        public_id=uploaded_file.storage_public_id,
        size=uploaded_file.file_size or 0,
    )


def delete_stored(stored):
    """Remove a stored copy; ``None`` (nothing stored yet) is a no-op"""
    if stored is None:
        return False
    storage = get_storage(stored.backend)
    return storage.delete(stored.path, stored.public_id)
