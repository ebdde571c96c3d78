"""
Finance Tracker - Transaction Attachments

Receipts and invoices attached to a transaction. Files arrive base64-encoded
from the web client and are stored in the upload folder; the stored file name
becomes the transaction's attachment_id.

License: MIT
"""

import base64
import binascii
import datetime
import mimetypes
import random
from pathlib import Path

from finance_tracker import config

MAX_FILE_SIZE_MB = 10
MAX_FILE_SIZE_BYTES = MAX_FILE_SIZE_MB * 1024 * 1024

ALLOWED_MIME_TYPES = (
    'application/pdf',
    'image/jpeg', 'image/jpg', 'image/png', 'image/gif', 'image/webp', 'image/heic',
    'text/plain',
    'application/msword',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    'application/vnd.ms-excel',
    'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
)
ALLOWED_EXTENSIONS = (
    '.pdf', '.jpg', '.jpeg', '.png', '.gif', '.webp', '.heic',
    '.txt', '.doc', '.docx', '.xls', '.xlsx',
)

BASE36 = '0123456789abcdefghijklmnopqrstuvwxyz'


def _base36(length=6):
    return ''.join(random.choice(BASE36) for _ in range(length))


def _strip_data_url(data):
    # "data:image/png;base64,AAAA" -> "AAAA"
    if 'base64,' in data:
        return data.split('base64,', 1)[1]
    return data


class AttachmentMixin:

    def get_upload_folder(self):
        """Configured folder, else the engine's upload_dir, else the environment default."""
        folder = self.get_setting('upload_folder')
        if folder:
            return Path(folder)
        if self.upload_dir:
            return self.upload_dir
        return Path(config.get_upload_dir())

    def set_upload_folder(self, path):
        """
        Returns:
            tuple: (success bool, message str)
        """
        if not path or not isinstance(path, str) or not path.strip():
            return False, "Invalid folder path."
        folder = Path(path.strip()).expanduser()
        try:
            folder.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return False, f"Folder is not accessible: {e}"
        self.set_setting('upload_folder', str(folder))
        self.log_info('FILES', 'set_upload_folder', f"Upload folder set: {folder}")
        return True, "Upload folder configured successfully."

    def upload_transaction_file(self, transaction_id, file_data):
        """
        Attach a file to a transaction, replacing any previous attachment.

        Args:
            file_data (dict): name, mime_type and data (base64, data: URLs accepted)

        Returns:
            tuple: (success bool, message str, file dict or None)
        """
        tx = self.get_transaction(transaction_id)
        if not tx:
            return False, "Transaction not found.", None

        if not isinstance(file_data, dict):
            return False, "Invalid file data.", None
        name = str(file_data.get('name') or '').strip()
        mime_type = str(file_data.get('mime_type') or '').strip().lower()
        data = file_data.get('data') or file_data.get('content') or ''
        if not name or not mime_type or not data:
            return False, "Invalid file data.", None

        if mime_type not in ALLOWED_MIME_TYPES:
            self.log_warning('FILES', 'upload_transaction_file', f"Rejected MIME type: {mime_type}")
            return False, "File type not allowed. Allowed: images, PDF, TXT, Excel and Word.", None
        extension = Path(name.lower()).suffix
        if extension not in ALLOWED_EXTENSIONS:
            self.log_warning('FILES', 'upload_transaction_file', f"Rejected extension: {name}")
            return False, "File extension not allowed.", None

        data = _strip_data_url(data)
        if len(data) * 3 / 4 > MAX_FILE_SIZE_BYTES:
            return False, f"File too large. Maximum size: {MAX_FILE_SIZE_MB}MB.", None
        try:
            content = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError):
            return False, "File content is not valid base64.", None

        folder = self.get_upload_folder()
        stored_name = f"TX-{tx['id']}-{datetime.datetime.now().strftime('%Y%m%d%H%M%S')}-{_base36()}{extension}"
        try:
            folder.mkdir(parents=True, exist_ok=True)
            (folder / stored_name).write_bytes(content)
        except OSError as e:
            self.log_error('FILES', 'upload_transaction_file', e)
            return False, f"Error saving file: {e}", None

        if tx['attachment_id']:
            self._delete_stored_file(tx['attachment_id'])
        self._set_attachment_id(tx['id'], stored_name)

        self.log_info('FILES', 'upload_transaction_file', f"File attached to transaction {tx['id']}: {stored_name}")
        return True, "File uploaded successfully.", {
            'attachment_id': stored_name,
            'name': name,
            'mime_type': mime_type,
            'size': len(content),
        }

    def _delete_stored_file(self, attachment_id):
        path = self.get_upload_folder() / Path(attachment_id).name
        if path.exists():
            path.unlink()
            return True
        return False

    def get_transaction_file(self, transaction_id):
        """
        Returns:
            tuple: (file dict or None, message str) with name, mime_type, size and base64 data
        """
        tx = self.get_transaction(transaction_id)
        if not tx:
            return None, "Transaction not found."
        if not tx['attachment_id']:
            return None, "Transaction has no attachment."

        path = self.get_upload_folder() / Path(tx['attachment_id']).name
        if not path.exists():
            return None, "Attached file not found in the upload folder."
        content = path.read_bytes()
        return {
            'attachment_id': tx['attachment_id'],
            'name': path.name,
            'mime_type': mimetypes.guess_type(path.name)[0] or 'application/octet-stream',
            'size': len(content),
            'data': base64.b64encode(content).decode('ascii'),
        }, "File loaded."

    def remove_transaction_file(self, transaction_id):
        """
        Returns:
            tuple: (success bool, message str)
        """
        tx = self.get_transaction(transaction_id)
        if not tx:
            return False, "Transaction not found."
        if not tx['attachment_id']:
            return False, "Transaction has no attachment."

        self._delete_stored_file(tx['attachment_id'])
        self._set_attachment_id(tx['id'], None)
        self.log_info('FILES', 'remove_transaction_file', f"Attachment removed from transaction {tx['id']}")
        return True, "File removed successfully."
