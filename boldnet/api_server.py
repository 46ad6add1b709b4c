"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API server with WebSocket support for network training.

This module provides endpoints for:
- Creating and managing networks
- Training networks with the bold-driver trainer, with real-time progress
  updates via WebSockets
- Propagating inputs and rendering image-patch outputs
- Persisting networks to/from the SQLite registry

The server uses:
- Flask for REST API endpoints
- Flask-SocketIO for WebSocket communication
- Gevent for async background training tasks
- SQLite for network persistence
"""

import base64
import logging
import os
import sys
import uuid
from io import BytesIO
from typing import Any, Dict, List

import gevent
import numpy as np
from flask import Flask, Response, jsonify, request
from flask_cors import CORS
from flask_socketio import SocketIO

# Use non-GUI backend for matplotlib (required for server environments)
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from boldnet.config import configure_logging
from boldnet.data_loader import TrainingSet
from boldnet.exceptions import BoldnetError, DimensionError
from boldnet.image_codec import unpack_pixels
from boldnet.model_persistence import (
    save_network,
    load_network,
    list_saved_networks,
    delete_network,
    delete_old_networks
)
from boldnet.network import Network
from boldnet.trainer import Trainer
from boldnet.weights_io import dumps_weights

configure_logging()
logger = logging.getLogger(__name__)

# ============================================================================
# FLASK APP SETUP
# ============================================================================

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": "*"}})

is_production = os.getenv('BOLDNET_ENV') == 'production'

# SocketIO enables real-time communication (WebSockets) for training updates
socketio = SocketIO(
    app,
    cors_allowed_origins="*",
    async_mode='gevent',
    logger=not is_production,
    engineio_logger=not is_production,
    ping_timeout=60,
    ping_interval=25
)

# ============================================================================
# GLOBAL STATE
# ============================================================================

# Networks currently loaded in memory: {network_id: network_info}
active_networks: Dict[str, Dict[str, Any]] = {}

# Training jobs being tracked: {job_id: job_info}
training_jobs: Dict[str, Dict[str, Any]] = {}


def reload_saved_networks() -> None:
    """
    Reload all saved networks from the database into memory.

    Called at startup to restore networks that were saved before the
    application was restarted.
    """
    saved_networks = list_saved_networks()

    if not saved_networks:
        logger.info("No saved networks to reload")
        return

    loaded_count = 0
    for net_info in saved_networks:
        network_id = net_info['network_id']
        net = load_network(network_id)
        if net is None:
            logger.warning(f"Failed to load network {network_id}")
            continue

        active_networks[network_id] = {
            'network': net,
            'architecture': net_info['architecture'],
            'activation': net_info['activation'],
            'trained': net_info['trained'],
            'error': net_info['error']
        }
        loaded_count += 1

    logger.info(f"Reloaded {loaded_count} network(s) from database")


reload_saved_networks()


# ============================================================================
# BACKGROUND TASKS
# ============================================================================

# Flag to ensure cleanup task only starts once
_cleanup_task_started = False


def cleanup_old_networks_task() -> None:
    """
    Background task that runs on startup, then every 24 hours to:
    - Delete networks older than 2 days from the database
    - Sync in-memory networks with the database
    - Remove completed/failed training jobs from memory
    """
    while True:
        try:
            logger.info("Starting automatic cleanup of old networks...")
            deleted_count = delete_old_networks(days=2)

            if deleted_count > 0:
                saved_ids = {net['network_id'] for net in list_saved_networks()}
                networks_to_remove = [
                    nid for nid, info in active_networks.items()
                    if info['trained'] and nid not in saved_ids
                ]
                for nid in networks_to_remove:
                    del active_networks[nid]
                    logger.info(f"Removed network {nid} from memory (deleted from database)")
            elif deleted_count < 0:
                logger.error("Cleanup returned error code")

            cleanup_finished_training_jobs()

            logger.info("Next cleanup scheduled in 24 hours")
            gevent.sleep(86400)

        except Exception as e:
            logger.exception(f"Error during network cleanup: {e}")
            gevent.sleep(3600)


def cleanup_finished_training_jobs() -> None:
    """Remove completed or failed training jobs from memory."""
    finished_statuses = {'completed', 'failed'}
    jobs_to_remove = [
        job_id for job_id, job_info in training_jobs.items()
        if job_info.get('status') in finished_statuses
    ]

    for job_id in jobs_to_remove:
        del training_jobs[job_id]

    if jobs_to_remove:
        logger.info(f"Cleaned up {len(jobs_to_remove)} finished training job(s)")


def start_cleanup_task() -> None:
    """
    Start the background cleanup task.

    Calling it more than once has no effect.
    """
    global _cleanup_task_started

    if _cleanup_task_started:
        logger.debug("Cleanup task already started, skipping")
        return

    _cleanup_task_started = True
    logger.info("Starting cleanup task (runs immediately, then every 24 hours)")
    gevent.spawn(cleanup_old_networks_task)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def array_to_float_list(array: np.ndarray) -> List[float]:
    """Convert a numpy array to a list of floats (for JSON serialization)."""
    return [float(val) for val in np.asarray(array).flatten()]


def is_positive_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


def create_patch_image(values: np.ndarray, height: int, width: int) -> str:
    """
    Create a base64-encoded PNG of an output vector shown as an image.

    Args:
        values: height * width packed pixel values
        height: Image height in pixels
        width: Image width in pixels

    Returns:
        Base64-encoded PNG image string
    """
    plt.figure(figsize=(3, 3))
    plt.imshow(unpack_pixels(np.reshape(values, (height, width))))
    plt.axis('off')

    buffer = BytesIO()
    plt.savefig(buffer, format='png', bbox_inches='tight')
    buffer.seek(0)
    img_base64 = base64.b64encode(buffer.getvalue()).decode('utf-8')
    plt.close()

    return img_base64


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.route('/api/status', methods=['GET'])
def get_status():
    """Return server status and statistics."""
    active_statuses = ('pending', 'training')
    active_training = sum(
        1 for job in training_jobs.values()
        if job.get('status') in active_statuses
    )

    return jsonify({
        'status': 'online',
        'active_networks': len(active_networks),
        'training_jobs': active_training
    }), 200


@app.route('/api/networks', methods=['POST'])
def create_network():
    """
    Create a new network with random weights.

    Request body (optional):
        {'layer_sizes': [2, 2, 1], 'activation': 'sigmoid', 'seed': 1}

    Returns:
        JSON with network_id, architecture, and status
    """
    data = request.get_json(silent=True) or {}
    layer_sizes = data.get('layer_sizes', [2, 2, 1])
    activation = data.get('activation', 'sigmoid')

    if not isinstance(layer_sizes, list) or len(layer_sizes) < 2:
        logger.warning(f"Invalid architecture requested: {layer_sizes}")
        return jsonify({
            'error': 'Invalid architecture. Must have at least 2 layers.'
        }), 400

    try:
        net = Network(layer_sizes, activation=activation, seed=data.get('seed'))
    except (BoldnetError, ValueError, TypeError) as e:
        logger.warning(f"Rejected network {layer_sizes}: {e}")
        return jsonify({'error': str(e)}), 400

    network_id = str(uuid.uuid4())
    active_networks[network_id] = {
        'network': net,
        'architecture': net.sizes,
        'activation': net.activation.name,
        'trained': False,
        'error': None
    }

    logger.info(f"Created network {network_id} with architecture {net.sizes}")

    return jsonify({
        'network_id': network_id,
        'architecture': net.sizes,
        'activation': net.activation.name,
        'status': 'created'
    }), 201


@app.route('/api/networks/<network_id>/propagate', methods=['POST'])
def propagate(network_id: str):
    """
    Run an input vector through a network.

    Request body:
        {'input': [0, 1]}
    """
    if network_id not in active_networks:
        return jsonify({'error': 'Network not found'}), 404

    data = request.get_json(silent=True) or {}
    try:
        output = active_networks[network_id]['network'].propagate(data.get('input', []))
    except (DimensionError, ValueError, TypeError) as e:
        return jsonify({'error': str(e)}), 400

    return jsonify({
        'network_id': network_id,
        'output': array_to_float_list(output)
    }), 200


@app.route('/api/networks/<network_id>/train', methods=['POST'])
def train_network(network_id: str):
    """
    Start training a network in the background.

    Request body:
        {
            'training_data': [[[0, 0], [0]], [[0, 1], [1]], ...],
            'epochs': 20000,
            'learning_rate': 0.5,
            'lambda_mult': 1.01,
            'printing_rate': 100
        }

    Returns:
        JSON with job_id, network_id, and status, or 409 if the network
        is already being trained
    """
    if network_id not in active_networks:
        logger.warning(f"Training requested for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    if _has_active_job(network_id):
        logger.warning(f"Training already in progress for network: {network_id}")
        return jsonify({'error': 'Network is already being trained'}), 409

    data = request.get_json(silent=True) or {}
    epochs = data.get('epochs', 20000)
    learning_rate = data.get('learning_rate', 0.5)
    lambda_mult = data.get('lambda_mult', 1.01)
    printing_rate = data.get('printing_rate', 100)

    if not isinstance(epochs, int) or epochs < 1:
        return jsonify({'error': 'epochs must be a positive integer'}), 400
    if not is_positive_number(learning_rate):
        return jsonify({'error': 'learning_rate must be a positive number'}), 400
    if not is_positive_number(lambda_mult) or lambda_mult <= 1:
        return jsonify({'error': 'lambda_mult must be a number greater than 1'}), 400
    if not isinstance(printing_rate, int) or printing_rate < 0:
        return jsonify({'error': 'printing_rate must be a non-negative integer'}), 400

    net = active_networks[network_id]['network']
    try:
        training_set = TrainingSet.from_pairs(data.get('training_data') or [])
        training_set.validate_for(net.sizes)
    except (BoldnetError, ValueError, TypeError) as e:
        return jsonify({'error': f'Invalid training_data: {e}'}), 400

    job_id = str(uuid.uuid4())
    training_jobs[job_id] = {
        'network_id': network_id,
        'status': 'pending',
        'progress': 0,
        'epochs': epochs
    }

    logger.info(
        f"Created training job {job_id} for network {network_id}: "
        f"epochs={epochs}, lr={learning_rate}, lambda={lambda_mult}"
    )

    socketio.start_background_task(
        train_network_task,
        network_id, job_id, training_set, epochs, learning_rate,
        lambda_mult, printing_rate
    )

    return jsonify({
        'job_id': job_id,
        'network_id': network_id,
        'status': 'training_started'
    }), 202


def _has_active_job(network_id: str) -> bool:
    """Whether a pending or running job is training the network."""
    return any(
        job.get('network_id') == network_id and job.get('status') in ('pending', 'training')
        for job in training_jobs.values()
    )


def train_network_task(
    network_id: str,
    job_id: str,
    training_set: TrainingSet,
    epochs: int,
    learning_rate: float,
    lambda_mult: float,
    printing_rate: int
) -> None:
    """
    Background task that trains a network.

    Sends progress updates via WebSocket as training progresses.
    Only one job trains a given network at a time, see _has_active_job.
    """

    def on_progress(data: Dict[str, Any]) -> None:
        """Called at every progress report to send updates."""
        progress = (data['epoch'] / data['total_epochs']) * 100

        training_jobs[job_id]['status'] = 'training'
        training_jobs[job_id]['progress'] = progress

        socketio.emit('training_update', {
            'job_id': job_id,
            'network_id': network_id,
            'epoch': data['epoch'],
            'total_epochs': data['total_epochs'],
            'error': data['error'],
            'learning_rate': data['learning_rate'],
            'elapsed_time': data['elapsed_time'],
            'progress': progress
        })
        gevent.sleep(0)

    def yield_to_other_tasks():
        gevent.sleep(0)

    try:
        logger.info(f"Starting training for job {job_id}")
        net = active_networks[network_id]['network']
        training_jobs[job_id]['status'] = 'training'

        trainer = Trainer(
            lambda_mult=lambda_mult,
            printing_rate=printing_rate,
            callback=on_progress,
            yield_func=yield_to_other_tasks
        )
        summary = trainer.train(net, training_set, learning_rate, epochs)
        error = trainer.calculate_error(net, training_set)

        training_jobs[job_id].update({
            'status': 'completed',
            'progress': 100,
            'error': error,
            'epochs_run': summary.epochs,
            'learning_rate': summary.learning_rate,
            'termination_reason': summary.reason.value
        })

        info = active_networks.get(network_id)
        if info is None:
            logger.warning(
                f"Network {network_id} was deleted during job {job_id}, not saving"
            )
        else:
            info['trained'] = True
            info['error'] = error
            save_network(
                net, network_id, trained=True,
                error=error if np.isfinite(error) else None
            )

        logger.info(f"Training completed for job {job_id}: {summary}")

        socketio.emit('training_complete', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'completed',
            'error': error,
            'termination_reason': summary.reason.value,
            'progress': 100
        })
        gevent.sleep(0)

    except Exception as e:
        logger.exception(f"Training failed for job {job_id}: {e}")

        training_jobs[job_id]['status'] = 'failed'
        training_jobs[job_id]['error_message'] = str(e)

        socketio.emit('training_error', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'failed',
            'error': str(e)
        })
        gevent.sleep(0)


@app.route('/api/training/<job_id>', methods=['GET'])
def get_training_status(job_id: str):
    """Get the current status of a training job."""
    if job_id in training_jobs:
        return jsonify(training_jobs[job_id]), 200

    logger.warning(f"Status requested for non-existent job: {job_id}")
    return jsonify({'error': 'Training job not found'}), 404


@app.route('/api/networks', methods=['GET'])
def list_networks():
    """List all available networks (both in-memory and saved to disk)."""
    in_memory = [
        {
            'network_id': nid,
            'architecture': info['architecture'],
            'activation': info['activation'],
            'trained': info['trained'],
            'error': info['error'],
            'status': 'in_memory'
        }
        for nid, info in active_networks.items()
    ]

    in_memory_ids = set(active_networks.keys())
    saved_only = []
    for net in list_saved_networks():
        if net['network_id'] not in in_memory_ids:
            net['status'] = 'saved'
            saved_only.append(net)

    logger.debug(f"Listing networks: {len(in_memory)} in memory, {len(saved_only)} saved")

    return jsonify({'networks': in_memory + saved_only}), 200


@app.route('/api/networks/<network_id>/weights', methods=['GET'])
def get_weights(network_id: str):
    """Download a network's weights in the text weights format."""
    if network_id not in active_networks:
        return jsonify({'error': 'Network not found'}), 404

    net = active_networks[network_id]['network']
    return Response(dumps_weights(net.get_weights()), mimetype='text/plain')


@app.route('/api/networks/<network_id>/render', methods=['POST'])
def render_output(network_id: str):
    """
    Propagate an input and return the output as a PNG image.

    Request body:
        {'input': [...], 'height': 8, 'width': 8}
    """
    if network_id not in active_networks:
        return jsonify({'error': 'Network not found'}), 404

    data = request.get_json(silent=True) or {}
    height = data.get('height')
    width = data.get('width')
    if not isinstance(height, int) or not isinstance(width, int) or height < 1 or width < 1:
        return jsonify({'error': 'height and width must be positive integers'}), 400

    net = active_networks[network_id]['network']
    try:
        output = net.propagate(data.get('input', []))
    except (DimensionError, ValueError, TypeError) as e:
        return jsonify({'error': str(e)}), 400

    if output.shape[0] != height * width:
        return jsonify({
            'error': f'Output has {output.shape[0]} values, '
                     f'cannot show as {height}x{width}'
        }), 400

    return jsonify({
        'network_id': network_id,
        'output': array_to_float_list(output),
        'image_data': create_patch_image(output, height, width)
    }), 200


@app.route('/api/networks/<network_id>', methods=['DELETE'])
def delete_network_endpoint(network_id: str):
    """Delete a network from both memory and disk."""
    deleted_from_memory = False
    if network_id in active_networks:
        del active_networks[network_id]
        deleted_from_memory = True

    deleted_from_disk = delete_network(network_id)

    if not deleted_from_memory and not deleted_from_disk:
        logger.warning(f"Delete attempted for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    logger.info(f"Deleted network {network_id}: memory={deleted_from_memory}, disk={deleted_from_disk}")

    return jsonify({
        'network_id': network_id,
        'deleted_from_memory': deleted_from_memory,
        'deleted_from_disk': deleted_from_disk
    }), 200


@app.route('/api/networks', methods=['DELETE'])
def delete_all_networks():
    """Delete all networks from both memory and disk."""
    in_memory_ids = list(active_networks.keys())
    saved_ids = [net['network_id'] for net in list_saved_networks()]
    all_network_ids = list(set(in_memory_ids + saved_ids))

    deleted_from_memory_count = 0
    deleted_from_disk_count = 0

    for network_id in all_network_ids:
        if network_id in active_networks:
            del active_networks[network_id]
            deleted_from_memory_count += 1

        if network_id in saved_ids and delete_network(network_id):
            deleted_from_disk_count += 1

    logger.info(
        f"Deleted all networks: {len(all_network_ids)} total, "
        f"{deleted_from_memory_count} from memory, {deleted_from_disk_count} from disk"
    )

    return jsonify({
        'deleted_count': len(all_network_ids),
        'deleted_from_memory': deleted_from_memory_count,
        'deleted_from_disk': deleted_from_disk_count,
        'message': f'Successfully deleted {len(all_network_ids)} network(s)'
    }), 200


@app.route('/api/networks/cleanup', methods=['POST'])
def cleanup_old_networks_endpoint():
    """
    Manually trigger cleanup of networks older than specified days.

    Request body (optional):
        {'days': 2}  # defaults to 2
    """
    data = request.get_json(silent=True) or {}
    days = data.get('days', 2)

    if not isinstance(days, (int, float)) or isinstance(days, bool) or days < 0:
        return jsonify({'error': 'days must be a non-negative number'}), 400

    deleted_count = delete_old_networks(days=int(days))
    if deleted_count == -1:
        return jsonify({'error': 'Error occurred during cleanup'}), 500

    logger.info(f"Manual cleanup: deleted {deleted_count} network(s) older than {days} day(s)")

    return jsonify({
        'deleted_count': deleted_count,
        'days': days,
        'message': f'Successfully deleted {deleted_count} network(s) older than {days} day(s)'
    }), 200


# ============================================================================
# SERVER STARTUP
# ============================================================================

def main() -> None:
    """Run the server with WebSocket support."""
    port = int(os.environ.get('PORT', 8000))
    logger.info(f"Starting server at http://localhost:{port}/")

    start_cleanup_task()

    try:
        socketio.run(
            app,
            host='0.0.0.0',
            port=port,
            debug=not is_production,
            use_reloader=False,
            allow_unsafe_werkzeug=True
        )
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {port} is already in use.")
            sys.exit(1)
        raise


if __name__ == '__main__':
    main()
