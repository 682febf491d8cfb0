import json
import os
import threading
import logging
from pathlib import Path
from typing import Dict, List, Optional

from werkzeug.security import generate_password_hash, check_password_hash

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
DATA_DIR = os.environ.get('TRADE_DATA_DIR') or str(BASE_DIR / 'data')

DATASETS = {
    'suppliers': 'suppliers.json',
    'ports': 'ports.json',
    'destination_ports': 'destination_ports.json',
    'tariffs': 'tariffs.json',
    'routes': 'routes.json',
    'risk_factors': 'risk_factors.json',
    'sample_products': 'sample_products.json',
    'recent_activity': 'recent_activity.json',
}

# Parsed datasets keyed by file path, refreshed when the file mtime changes
_dataset_cache = {}
_dataset_cache_lock = threading.Lock()


class DatasetError(Exception):
    """Raised when a dataset file cannot be read or parsed."""

    def __init__(self, name, reason):
        self.name = name
        self.reason = reason
        label = name.replace('_', ' ')
        if reason == 'parse':
            message = f'Error parsing {label} data'
        elif reason == 'save':
            message = 'Failed to save user'
        elif name == 'users':
            message = 'Failed to load users'
        else:
            message = f'Failed to load {label} data'
        super().__init__(message)


class UserExistsError(Exception):
    pass


def dataset_path(name, data_dir=None):
    if name not in DATASETS:
        raise KeyError(f"Unknown dataset: {name}")
    return Path(data_dir or DATA_DIR) / DATASETS[name]


def load_dataset(name, data_dir=None):
    """Return the parsed JSON for a dataset, reading from disk only when it changed."""
    path = dataset_path(name, data_dir)
    cache_key = str(path)
    try:
        mtime = path.stat().st_mtime
    except OSError as exc:
        logger.error(f"Dataset {name} unavailable at {path}: {exc}")
        raise DatasetError(name, 'load') from exc

    with _dataset_cache_lock:
        cached = _dataset_cache.get(cache_key)
        if cached and cached.get('mtime') == mtime:
            return cached['data']

        try:
            with open(path, 'r', encoding='utf-8') as f:
                raw = f.read()
        except OSError as exc:
            logger.error(f"Failed to read dataset {name}: {exc}")
            raise DatasetError(name, 'load') from exc
        try:
            data = json.loads(raw)
        except ValueError as exc:
            logger.error(f"Failed to parse dataset {name}: {exc}")
            raise DatasetError(name, 'parse') from exc

        _dataset_cache[cache_key] = {'data': data, 'mtime': mtime}
        return data


def clear_dataset_cache():
    with _dataset_cache_lock:
        _dataset_cache.clear()


def _coerce_id(value):
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _find_by_id(records, record_id):
    target = _coerce_id(record_id)
    if target is None:
        return None
    for record in records:
        if _coerce_id(record.get('id')) == target:
            return record
    return None


def find_supplier(supplier_id, data_dir=None):
    return _find_by_id(load_dataset('suppliers', data_dir), supplier_id)


def find_port(port_id, data_dir=None):
    return _find_by_id(load_dataset('ports', data_dir), port_id)


def find_destination_port(port_id, data_dir=None):
    return _find_by_id(load_dataset('destination_ports', data_dir), port_id)


class UserStore:
    """Flat JSON file of staff accounts.

    Each record is ``{"email": ..., "password_hash": ...}``. A missing file is an
    empty store; the file is created on the first registration.
    """

    _lock = threading.Lock()

    def __init__(self, path):
        self.path = Path(path)

    def _read(self) -> List[Dict]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                raw = f.read()
        except OSError as exc:
            raise DatasetError('users', 'load') from exc
        if not raw.strip():
            return []
        try:
            users = json.loads(raw)
        except ValueError as exc:
            raise DatasetError('users', 'parse') from exc
        if not isinstance(users, list):
            raise DatasetError('users', 'parse')
        return users

    def _write(self, users: List[Dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
        try:
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(users, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            logger.error(f"Failed to save users file {self.path}: {exc}")
            raise DatasetError('users', 'save') from exc

    def list_emails(self) -> List[str]:
        with self._lock:
            return [u.get('email') for u in self._read() if u.get('email')]

    def get(self, email) -> Optional[Dict]:
        key = normalize_email(email)
        with self._lock:
            for user in self._read():
                if normalize_email(user.get('email')) == key:
                    return user
        return None

    def add(self, email, password) -> Dict:
        key = normalize_email(email)
        with self._lock:
            users = self._read()
            if any(normalize_email(u.get('email')) == key for u in users):
                raise UserExistsError(email)
            record = {'email': key, 'password_hash': generate_password_hash(password)}
            users.append(record)
            self._write(users)
        logger.info(f"Registered user {key}")
        return {'email': key}

    def authenticate(self, email, password) -> bool:
        user = self.get(email)
        if not user or not password:
            return False
        stored = user.get('password_hash')
        if not stored:
            return False
        return check_password_hash(stored, password)


def normalize_email(value):
    return str(value or '').strip().lower()
