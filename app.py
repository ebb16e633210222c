"""
ASIC Fleet Scanner - Main Application
"""
import logging
import time
from threading import Thread, Lock
from typing import Dict, List, Optional, Union
from flask import Flask, current_app, jsonify, request

import config
from detail import DetailMonitor
from history import HistoryStore
from miners import DeviceClient, MinerClient
from ranges import IPRange, RangeError, SavedRange, calculate_total_ips, parse_ip_range
from recording import Recorder, export_miners_csv
from registry import MinerRegistry, SortColumn
from scanner import ProgressTracker, ScanOrchestrator
from settings import AppConfig, ConfigStore

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Flask app
app = Flask(__name__)


class FleetScanner:
    """Owns the shared state of one run and wires the components together"""

    def __init__(self, config_store: ConfigStore = None, client: DeviceClient = None,
                 recorder: Recorder = None):
        self.config_store = config_store or ConfigStore(config.CONFIG_PATH)
        self.settings: AppConfig = self.config_store.load()
        self.client = client or MinerClient(
            identification_timeout=self.settings.identification_timeout_secs,
            connectivity_timeout=self.settings.connectivity_timeout_secs,
            connectivity_retries=self.settings.connectivity_retries
        )

        self.registry = MinerRegistry()
        self.progress = ProgressTracker()
        self.history = HistoryStore()
        self.orchestrator = ScanOrchestrator(self.client, self.registry,
                                             self.progress, self.history)
        self.recorder = recorder or Recorder(config.RECORDINGS_DIR)
        self.detail = DetailMonitor(self.client, self.registry, self.history,
                                    self.recorder)

        self.lock = Lock()
        self.auto_scan_enabled = True
        self.last_scan_time: Optional[float] = None
        self.last_sample_time: Optional[float] = None

        self.monitoring_thread = None
        self.monitoring_active = False

    # Scanning

    def scan_ranges(self, ranges: List[Union[IPRange, str]], now: Optional[float] = None) -> bool:
        """
        Start a pass over the given ranges

        Returns:
            False if a pass is already running
        """
        total_ips = sum(calculate_total_ips(r) for r in ranges)
        if not self.progress.begin(total_ips, len(ranges)):
            logger.warning("Scan already in progress, trigger ignored")
            return False

        self.orchestrator.run_scan(ranges)
        self.last_scan_time = time.monotonic() if now is None else now
        return True

    def scan_all_saved_ranges(self, now: Optional[float] = None) -> bool:
        """Scan every saved range. Raises ValueError when none are saved."""
        with self.lock:
            ranges = [r.range for r in self.settings.saved_ranges]
        if not ranges:
            raise ValueError("No saved ranges to scan")
        return self.scan_ranges(ranges, now)

    def scan_range(self, start: str, end: str) -> bool:
        """Scan one operator-entered range. Raises RangeError on bad input."""
        return self.scan_ranges([parse_ip_range(start, end)])

    def _should_auto_scan(self, now: float) -> bool:
        if not self.auto_scan_enabled:
            return False
        with self.lock:
            if not self.settings.saved_ranges:
                return False
            interval = self.settings.auto_scan_interval_secs
        if self.last_scan_time is not None and now - self.last_scan_time < interval:
            return False
        return not self.progress.is_scanning

    # Saved ranges and settings

    def add_saved_range(self, name: str, start: str, end: str) -> SavedRange:
        """Validate and persist a named range"""
        name = (name or "").strip()
        if not name:
            raise ValueError("Range name is required")
        ip_range = parse_ip_range(start, end)
        saved = SavedRange(name=name, range=str(ip_range))
        with self.lock:
            self.settings.saved_ranges.append(saved)
        self.save_config()
        return saved

    def remove_saved_range(self, index: int) -> bool:
        with self.lock:
            if not 0 <= index < len(self.settings.saved_ranges):
                return False
            del self.settings.saved_ranges[index]
        self.save_config()
        return True

    def load_saved_range(self, index: int) -> Dict:
        """Start/end addresses of a saved range. Raises IndexError/RangeError."""
        with self.lock:
            saved = self.settings.saved_ranges[index]
        start, end = saved.endpoints()
        return {'name': saved.name, 'start': start, 'end': end}

    def update_settings(self, **changes) -> AppConfig:
        """Apply tunable changes; saves and re-configures the client when anything changed"""
        unknown = set(changes) - set(AppConfig.TUNABLES)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")

        values = {}
        for name, value in changes.items():
            value = int(value)
            if value < 0 or (value == 0 and name != 'connectivity_retries'):
                raise ValueError(f"{name} must be positive")
            values[name] = value

        changed = False
        with self.lock:
            for name, value in values.items():
                if getattr(self.settings, name) != value:
                    setattr(self.settings, name, value)
                    changed = True
            settings = self.settings

        if changed:
            if isinstance(self.client, MinerClient):
                self.client.apply_settings(
                    settings.identification_timeout_secs,
                    settings.connectivity_timeout_secs,
                    settings.connectivity_retries
                )
            self.save_config()
        return settings

    def save_config(self) -> bool:
        with self.lock:
            return self.config_store.save(self.settings)

    # Periodic work

    def tick(self, now: Optional[float] = None):
        """One iteration of the monitor loop"""
        now = time.monotonic() if now is None else now

        if self.last_sample_time is None or now - self.last_sample_time >= config.SAMPLE_INTERVAL:
            self.history.sample_fleet(self.registry)
            self.detail.sample_metrics()
            self.last_sample_time = now

        with self.lock:
            interval = self.settings.detail_refresh_interval_secs
        for ip in self.detail.watched():
            self.detail.maybe_refresh(ip, interval, now)

        if self._should_auto_scan(now):
            try:
                self.scan_all_saved_ranges(now)
            except ValueError as e:
                logger.warning(f"Auto-scan skipped: {e}")

    def start_monitoring(self):
        """Start background monitoring thread"""
        if self.monitoring_active:
            logger.warning("Monitoring already active")
            return

        self.monitoring_active = True

        def monitor_loop():
            logger.info("Monitoring thread started")
            while self.monitoring_active:
                try:
                    self.tick()
                except Exception as e:
                    logger.error(f"Error in monitoring loop: {e}")
                time.sleep(config.SAMPLE_INTERVAL)
            logger.info("Monitoring thread stopped")

        self.monitoring_thread = Thread(target=monitor_loop, daemon=True)
        self.monitoring_thread.start()
        logger.info("Monitoring started")

    def stop_monitoring(self):
        """Stop background monitoring"""
        self.monitoring_active = False
        if self.monitoring_thread:
            self.monitoring_thread.join(timeout=5)
        self.detail.shutdown()
        logger.info("Monitoring stopped")


def _fleet() -> FleetScanner:
    return current_app.config['FLEET']


def _error(message: str, status: int):
    return jsonify({
        'success': False,
        'error': message
    }), status


# Flask Routes

@app.route('/api/miners', methods=['GET'])
def get_miners():
    """Get all miners, optionally filtered and sorted"""
    fleet = _fleet()
    miners = fleet.registry.search(request.args.get('q', ''))

    sort = request.args.get('sort')
    if sort:
        try:
            column = SortColumn[sort.upper()]
        except KeyError:
            return _error(f'Unknown sort column: {sort}', 400)
        descending = request.args.get('desc', 'false').lower() in ('1', 'true', 'yes')
        miners = fleet.registry.sort(miners, column, descending)

    return jsonify({
        'success': True,
        'miners': [m.to_dict() for m in miners]
    })


@app.route('/api/stats', methods=['GET'])
def get_stats():
    """Get fleet statistics"""
    return jsonify({
        'success': True,
        'stats': _fleet().registry.fleet_stats()
    })


@app.route('/api/progress', methods=['GET'])
def get_progress():
    """Get scan progress"""
    return jsonify({
        'success': True,
        'progress': _fleet().progress.snapshot().to_dict()
    })


@app.route('/api/scan', methods=['POST'])
def scan():
    """Scan an ad-hoc range, or all saved ranges when none is given"""
    fleet = _fleet()
    data = request.get_json(silent=True) or {}

    try:
        if data.get('start') or data.get('end'):
            started = fleet.scan_range(data.get('start', ''), data.get('end', ''))
        else:
            started = fleet.scan_all_saved_ranges()
    except (RangeError, ValueError) as e:
        return _error(str(e), 400)

    if not started:
        return _error('Scan already in progress', 409)
    return jsonify({
        'success': True,
        'message': 'Scan started'
    })


@app.route('/api/ranges', methods=['GET', 'POST'])
def saved_ranges():
    """List or add saved ranges"""
    fleet = _fleet()
    if request.method == 'GET':
        return jsonify({
            'success': True,
            'ranges': [r.to_dict() for r in fleet.settings.saved_ranges]
        })

    data = request.get_json(silent=True) or {}
    try:
        saved = fleet.add_saved_range(data.get('name', ''), data.get('start', ''),
                                      data.get('end', ''))
    except (RangeError, ValueError) as e:
        return _error(str(e), 400)
    return jsonify({
        'success': True,
        'range': saved.to_dict()
    })


@app.route('/api/ranges/<int:index>', methods=['DELETE'])
def delete_range(index: int):
    """Remove a saved range"""
    if not _fleet().remove_saved_range(index):
        return _error('Range not found', 404)
    return jsonify({
        'success': True,
        'message': 'Range removed'
    })


@app.route('/api/ranges/<int:index>/load', methods=['GET'])
def load_range(index: int):
    """Split a saved range back into start and end addresses"""
    try:
        loaded = _fleet().load_saved_range(index)
    except IndexError:
        return _error('Range not found', 404)
    except RangeError as e:
        return _error(str(e), 400)
    return jsonify({
        'success': True,
        'range': loaded
    })


@app.route('/api/settings', methods=['GET', 'POST'])
def scanner_settings():
    """Get or update intervals and timeouts"""
    fleet = _fleet()
    if request.method == 'POST':
        data = request.get_json(silent=True) or {}
        try:
            fleet.update_settings(**data)
        except (TypeError, ValueError) as e:
            return _error(str(e), 400)

    settings = fleet.settings.to_dict()
    settings.pop('saved_ranges')
    return jsonify({
        'success': True,
        'settings': settings
    })


@app.route('/api/history/fleet', methods=['GET'])
def fleet_history():
    """Fleet-wide hashrate history"""
    return jsonify({
        'success': True,
        'history': [p._asdict() for p in _fleet().history.fleet_history()]
    })


@app.route('/api/miner/<ip>/history', methods=['GET'])
def miner_history(ip: str):
    """Long-horizon hashrate history of one miner"""
    return jsonify({
        'success': True,
        'history': [p._asdict() for p in _fleet().history.hashrate_history(ip)]
    })


@app.route('/api/miner/<ip>/metrics', methods=['GET'])
def miner_metrics(ip: str):
    """Fine-grained metrics history of an observed miner"""
    return jsonify({
        'success': True,
        'metrics': [p._asdict() for p in _fleet().history.metrics_history(ip)]
    })


@app.route('/api/miner/<ip>/detail', methods=['POST', 'DELETE'])
def miner_detail(ip: str):
    """Open or close the detail view of a miner"""
    fleet = _fleet()
    if request.method == 'DELETE':
        fleet.detail.close(ip)
        return jsonify({
            'success': True,
            'message': f'Closed detail view for {ip}'
        })

    miner = fleet.registry.get(ip)
    if miner is None or not fleet.detail.open(ip):
        return _error('Miner not found', 404)
    return jsonify({
        'success': True,
        'miner': miner.to_dict()
    })


@app.route('/api/miner/<ip>/refresh', methods=['POST'])
def refresh_miner(ip: str):
    """Refresh a miner now"""
    fleet = _fleet()
    if ip not in fleet.registry:
        return _error('Miner not found', 404)
    fleet.detail.refresh_now(ip)
    return jsonify({
        'success': True,
        'message': 'Refresh requested'
    })


@app.route('/api/miners/control', methods=['POST'])
def control_miners():
    """Start, stop or toggle the fault light on selected miners"""
    fleet = _fleet()
    data = request.get_json(silent=True) or {}
    ips = data.get('ips') or []
    actions = {
        'start': fleet.detail.resume,
        'stop': fleet.detail.pause,
        'light': fleet.detail.toggle_light,
    }
    action = actions.get(data.get('action'))
    if action is None:
        return _error('Action must be one of: start, stop, light', 400)
    if not ips:
        return _error('No miners selected', 400)

    action(ips)
    return jsonify({
        'success': True,
        'message': f"{data['action']} sent to {len(ips)} miner(s)"
    })


@app.route('/api/miner/<ip>/recording', methods=['POST', 'DELETE'])
def miner_recording(ip: str):
    """Start or stop recording a miner"""
    fleet = _fleet()
    if request.method == 'DELETE':
        if not fleet.detail.stop_recording(ip):
            return _error('Not recording', 404)
        return jsonify({
            'success': True,
            'message': 'Recording stopped'
        })

    if ip not in fleet.registry:
        return _error('Miner not found', 404)
    state = fleet.detail.start_recording(ip)
    if state is None:
        return _error('Failed to start recording', 500)
    return jsonify({
        'success': True,
        'file_path': state.file_path,
        'columns': state.schema.header
    })


@app.route('/api/miner/<ip>/recording/export', methods=['POST'])
def export_recording(ip: str):
    """Copy a recording to a destination path"""
    data = request.get_json(silent=True) or {}
    destination = data.get('destination')
    if not destination:
        return _error('Missing destination', 400)
    if not _fleet().detail.export_recording(ip, destination):
        return _error('Export failed', 500)
    return jsonify({
        'success': True,
        'message': f'Recording exported to {destination}'
    })


@app.route('/api/export', methods=['POST'])
def export_miners():
    """Export the registry to CSV"""
    data = request.get_json(silent=True) or {}
    path = data.get('path')
    if not path:
        return _error('Missing path', 400)
    try:
        count = export_miners_csv(_fleet().registry.snapshot(), path)
    except OSError as e:
        logger.error(f"Failed to export CSV: {e}")
        return _error(str(e), 500)
    return jsonify({
        'success': True,
        'exported': count
    })


def main():
    logger.info("Starting ASIC Fleet Scanner")

    fleet = FleetScanner()
    app.config['FLEET'] = fleet
    fleet.start_monitoring()

    try:
        app.run(
            host=config.FLASK_HOST,
            port=config.FLASK_PORT,
            debug=config.DEBUG
        )
    finally:
        fleet.stop_monitoring()


if __name__ == '__main__':
    main()
