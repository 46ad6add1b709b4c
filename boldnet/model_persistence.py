"""
model_persistence.py
~~~~~~~~~~~~~~~~~~~~

SQLite-based registry of trained networks.

Weights are stored in the plain text weights format rather than as
pickled objects, so a stored network can be exported and loaded by any
other tool that reads weight files.
"""

import json
import logging
import math
import os
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Optional

from boldnet.exceptions import BoldnetError
from boldnet.network import Network
from boldnet.weights_io import dumps_weights, loads_weights

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_MODEL_DIR = 'models'


def default_model_dir() -> str:
    """Directory of the shared database, from BOLDNET_MODEL_DIR."""
    return os.getenv('BOLDNET_MODEL_DIR', DEFAULT_MODEL_DIR)


class ModelDatabase:
    """
    Manages the SQLite database of stored networks.

    The database stores:
    - Network metadata (architecture, activation, training status, error)
    - Weights in the text weights format
    """

    def __init__(self, db_path: str = 'models/networks.db'):
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._ensure_directory()
        self._initialize_schema()

    def _ensure_directory(self) -> None:
        """Create the database directory if it doesn't exist."""
        db_dir = os.path.dirname(self.db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir)

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Yields:
            sqlite3.Connection: Database connection
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _initialize_schema(self) -> None:
        """Create the database schema if it doesn't exist."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS networks (
                    network_id TEXT PRIMARY KEY,
                    architecture TEXT NOT NULL,
                    activation TEXT NOT NULL DEFAULT 'sigmoid',
                    weights TEXT NOT NULL,
                    trained INTEGER NOT NULL DEFAULT 0,
                    error REAL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_trained
                ON networks(trained)
            ''')

            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_created_at
                ON networks(created_at DESC)
            ''')

    @staticmethod
    def _metadata(row: sqlite3.Row) -> Dict[str, Any]:
        architecture = json.loads(row['architecture'])
        return {
            'network_id': row['network_id'],
            'architecture': architecture,
            'weights_shape': [
                [architecture[i], architecture[i + 1]]
                for i in range(len(architecture) - 1)
            ],
            'activation': row['activation'],
            'trained': bool(row['trained']),
            'error': row['error'],
            'created_at': row['created_at'],
            'updated_at': row['updated_at']
        }

    def save_network_to_db(
        self,
        network: Network,
        network_id: str,
        trained: bool = True,
        error: Optional[float] = None
    ) -> bool:
        """
        Save a network to the database.

        Args:
            network: Network object to save
            network_id: Unique identifier for the network
            trained: Whether the network has been trained
            error: Training-set error of the network

        Returns:
            bool: True if successful

        Raises:
            ValueError: If error is negative or not finite
        """
        if error is not None and not (math.isfinite(error) and error >= 0):
            raise ValueError(
                f"Error must be a finite non-negative number, got {error}"
            )

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO networks
                (network_id, architecture, activation, weights, trained, error)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(network_id) DO UPDATE SET
                    architecture = excluded.architecture,
                    activation = excluded.activation,
                    weights = excluded.weights,
                    trained = excluded.trained,
                    error = excluded.error,
                    updated_at = CURRENT_TIMESTAMP
            ''', (
                network_id,
                json.dumps(network.sizes),
                network.activation.name,
                dumps_weights(network.get_weights()),
                1 if trained else 0,
                error
            ))

        logger.info(
            f"Saved network '{network_id}' with architecture "
            f"{network.sizes}, trained={trained}, error={error}"
        )
        return True

    def load_network_from_db(self, network_id: str) -> Optional[Network]:
        """
        Load a network from the database.

        Args:
            network_id: Unique identifier of the network

        Returns:
            Network object or None if not found
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'SELECT weights, activation FROM networks WHERE network_id = ?',
                (network_id,)
            )
            row = cursor.fetchone()

            if row is None:
                logger.warning(f"Network '{network_id}' not found")
                return None

            network = Network(
                weights=loads_weights(row['weights'], f"network '{network_id}'"),
                activation=row['activation']
            )
            logger.info(f"Loaded network '{network_id}'")
            return network

    def list_networks_from_db(self) -> List[Dict[str, Any]]:
        """
        List all networks with metadata.

        Returns:
            List of network metadata dictionaries, newest first
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT network_id, architecture, activation, trained, error,
                       created_at, updated_at
                FROM networks
                ORDER BY created_at DESC
            ''')
            networks = [self._metadata(row) for row in cursor.fetchall()]

            logger.debug(f"Listed {len(networks)} networks")
            return networks

    def delete_network_from_db(self, network_id: str) -> bool:
        """
        Delete a network from the database.

        Returns:
            bool: True if deleted, False if not found
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'DELETE FROM networks WHERE network_id = ?',
                (network_id,)
            )

            deleted = cursor.rowcount > 0
            if deleted:
                logger.info(f"Deleted network '{network_id}'")
            else:
                logger.warning(
                    f"Could not delete network '{network_id}': not found"
                )
            return deleted

    def delete_old_networks_from_db(self, days: int) -> int:
        """
        Delete networks created more than ``days`` days ago.

        Returns:
            int: Number of networks deleted
        """
        if days < 0:
            raise ValueError(f"days must be non-negative, got {days}")

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                DELETE FROM networks
                WHERE julianday('now') - julianday(created_at) > ?
            ''', (days,))
            deleted = cursor.rowcount

        logger.info(f"Deleted {deleted} network(s) older than {days} day(s)")
        return deleted

    def get_network_metadata_from_db(
        self,
        network_id: str
    ) -> Optional[Dict[str, Any]]:
        """
        Get network metadata without loading the weights.

        Returns:
            Metadata dictionary or None if not found
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT network_id, architecture, activation, trained, error,
                       created_at, updated_at
                FROM networks
                WHERE network_id = ?
            ''', (network_id,))

            row = cursor.fetchone()
            if row is None:
                logger.warning(
                    f"Metadata for network '{network_id}' not found"
                )
                return None
            return self._metadata(row)


# Databases opened so far, one per directory
_databases: Dict[str, ModelDatabase] = {}


def _get_db(model_dir: Optional[str] = None) -> ModelDatabase:
    """
    Get or create the database for a model directory.

    Returns:
        ModelDatabase: The database instance
    """
    model_dir = model_dir or default_model_dir()
    if model_dir not in _databases:
        _databases[model_dir] = ModelDatabase(
            db_path=os.path.join(model_dir, 'networks.db')
        )
    return _databases[model_dir]


def save_network(
    network: Network,
    network_id: str,
    model_dir: Optional[str] = None,
    trained: bool = True,
    error: Optional[float] = None
) -> bool:
    """
    Save a network to the SQLite database.

    Args:
        network: The network to save
        network_id: A unique identifier for the network
        model_dir: Directory for the database file
        trained: Boolean indicating if the network has been trained
        error: Training-set error of the network

    Returns:
        bool: True if the save was successful, False otherwise

    Example:
        >>> net = Network([2, 2, 1])
        >>> save_network(net, "xor", trained=False)
        True
    """
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return False

    try:
        return _get_db(model_dir).save_network_to_db(
            network, network_id, trained, error
        )

    except ValueError as e:
        logger.error(f"Validation error saving network '{network_id}': {e}")
        return False
    except AttributeError as e:
        logger.error(
            f"Serialization error saving network '{network_id}': {e}"
        )
        return False
    except sqlite3.Error as e:
        logger.error(f"Database error saving network '{network_id}': {e}")
        return False
    except Exception as e:
        logger.exception(
            f"Unexpected error saving network '{network_id}': {e}"
        )
        return False


def load_network(network_id: str, model_dir: Optional[str] = None) -> Optional[Network]:
    """
    Load a network from the SQLite database.

    Args:
        network_id: The unique identifier of the network to load
        model_dir: Directory where the database is stored

    Returns:
        The loaded network or None if not found

    Example:
        >>> net = load_network("xor")
        >>> if net:
        ...     print(f"Loaded network with sizes {net.sizes}")
    """
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return None

    try:
        return _get_db(model_dir).load_network_from_db(network_id)

    except BoldnetError as e:
        logger.error(
            f"Stored weights for network '{network_id}' are invalid: {e}"
        )
        return None
    except sqlite3.Error as e:
        logger.error(
            f"Database error loading network '{network_id}': {e}"
        )
        return None
    except Exception as e:
        logger.exception(
            f"Unexpected error loading network '{network_id}': {e}"
        )
        return None


def list_saved_networks(model_dir: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    List all saved networks with their metadata.

    Returns:
        list: A list of metadata dictionaries for each saved network
    """
    try:
        return _get_db(model_dir).list_networks_from_db()

    except sqlite3.Error as e:
        logger.error(f"Database error listing networks: {e}")
        return []
    except json.JSONDecodeError as e:
        logger.error(f"JSON decode error listing networks: {e}")
        return []
    except Exception as e:
        logger.exception(f"Unexpected error listing networks: {e}")
        return []


def delete_network(network_id: str, model_dir: Optional[str] = None) -> bool:
    """
    Delete a saved network from the database.

    Returns:
        bool: True if deletion was successful, False otherwise
    """
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return False

    try:
        return _get_db(model_dir).delete_network_from_db(network_id)

    except sqlite3.Error as e:
        logger.error(f"Database error deleting network '{network_id}': {e}")
        return False
    except Exception as e:
        logger.exception(
            f"Unexpected error deleting network '{network_id}': {e}"
        )
        return False


def delete_old_networks(days: int = 2, model_dir: Optional[str] = None) -> int:
    """
    Delete networks older than the given number of days.

    Args:
        days: Age threshold in days
        model_dir: Directory where the database is stored

    Returns:
        int: Number of networks deleted, or -1 on a database error

    Raises:
        ValueError: If days is negative
    """
    if days < 0:
        raise ValueError(f"days must be non-negative, got {days}")

    try:
        return _get_db(model_dir).delete_old_networks_from_db(days)

    except sqlite3.Error as e:
        logger.error(f"Database error deleting old networks: {e}")
        return -1


def get_network_metadata(
    network_id: str,
    model_dir: Optional[str] = None
) -> Optional[Dict[str, Any]]:
    """
    Get metadata for a specific network without loading its weights.

    Returns:
        dict: Network metadata or None if not found

    Example:
        >>> metadata = get_network_metadata("xor")
        >>> if metadata:
        ...     print(f"Error: {metadata['error']}")
    """
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return None

    try:
        return _get_db(model_dir).get_network_metadata_from_db(network_id)

    except sqlite3.Error as e:
        logger.error(
            f"Database error getting metadata for '{network_id}': {e}"
        )
        return None
    except json.JSONDecodeError as e:
        logger.error(
            f"JSON decode error getting metadata for '{network_id}': {e}"
        )
        return None
    except Exception as e:
        logger.exception(
            f"Unexpected error getting metadata for '{network_id}': {e}"
        )
        return None
