"""
Unit tests for CSV recording and export
"""
import csv
import os
import shutil
import sys
import tempfile
import unittest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from miners.models import DeviceReading
from recording import BASE_COLUMNS, EXPORT_COLUMNS, Recorder, RecordingSchema, export_miners_csv
from registry import MinerInfo
from tests.mock_responses import make_reading


def _read_rows(path):
    with open(path, newline='', encoding='utf-8') as f:
        return list(csv.reader(f))


class TestRecorder(unittest.TestCase):
    """Test recording files"""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.recorder = Recorder(os.path.join(self.temp_dir, 'recordings'))

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_header_sized_to_topology(self):
        miner = MinerInfo.from_reading(make_reading('10.0.0.1', boards=3, fans=2))
        state = self.recorder.start(miner)

        header = _read_rows(state.file_path)[0]
        self.assertEqual(header[:len(BASE_COLUMNS)], BASE_COLUMNS)
        self.assertEqual(header[len(BASE_COLUMNS):], [
            'Board0Hashrate', 'Board1Hashrate', 'Board2Hashrate',
            'Board0Temp', 'Board1Temp', 'Board2Temp',
            'Fan1RPM', 'Fan2RPM'
        ])
        self.assertEqual(state.schema, RecordingSchema(3, 2))

    def test_file_name(self):
        miner = MinerInfo.from_reading(make_reading('10.0.0.1'))
        state = self.recorder.start(miner)

        name = os.path.basename(state.file_path)
        self.assertTrue(name.startswith('recording_10.0.0.1_AntminerS19_AA-BB-CC-00-00-01_'))
        self.assertTrue(name.endswith('.csv'))

    def test_row_values(self):
        miner = MinerInfo.from_reading(make_reading('10.0.0.1', hashrate=95.123, wattage=3250.4,
                                                    boards=1, fans=1, temperature=64.25))
        state = self.recorder.start(miner)

        self.assertTrue(self.recorder.append(state, miner))

        row = _read_rows(state.file_path)[1]
        self.assertEqual(row[0], '10.0.0.1')
        self.assertEqual(row[1], 'AA:BB:CC:00:00:01')
        self.assertEqual(row[5:9], ['95.12', '3250', '34.2', '64.2'])
        self.assertEqual(row[9:], ['95.12', '64.2', '5000'])
        self.assertEqual(state.row_count, 1)

    def test_schema_fixed_when_topology_changes(self):
        state = self.recorder.start(MinerInfo.from_reading(make_reading('10.0.0.1', boards=3, fans=2)))

        for boards, fans in [(3, 2), (2, 1), (4, 4), (0, 0)]:
            miner = MinerInfo.from_reading(make_reading('10.0.0.1', boards=boards, fans=fans))
            self.assertTrue(self.recorder.append(state, miner))

        rows = _read_rows(state.file_path)
        self.assertEqual(len(rows), 5)
        for row in rows:
            self.assertEqual(len(row), len(BASE_COLUMNS) + 3 + 3 + 2)
        self.assertEqual(state.row_count, 4)

    def test_append_noop_when_stopped(self):
        miner = MinerInfo.from_reading(make_reading('10.0.0.1'))
        state = self.recorder.start(miner)
        self.recorder.stop(state)

        self.assertFalse(self.recorder.append(state, miner))
        self.assertTrue(os.path.exists(state.file_path))
        self.assertEqual(len(_read_rows(state.file_path)), 1)

    def test_append_noop_without_reading(self):
        state = self.recorder.start(MinerInfo.from_reading(make_reading('10.0.0.1')))
        self.assertFalse(self.recorder.append(state, MinerInfo(ip='10.0.0.1')))
        self.assertEqual(state.row_count, 0)

    def test_sparse_reading_is_zero_filled(self):
        state = self.recorder.start(MinerInfo.from_reading(make_reading('10.0.0.1', boards=1, fans=1)))
        self.assertTrue(self.recorder.append(state, MinerInfo.from_reading(DeviceReading(ip='10.0.0.1'))))

        row = _read_rows(state.file_path)[1]
        self.assertEqual(row[5:], ['0.00', '0', '0.0', '0.0', '0.00', '0.0', '0'])

    def test_export_and_delete(self):
        miner = MinerInfo.from_reading(make_reading('10.0.0.1'))
        state = self.recorder.start(miner)
        self.recorder.append(state, miner)
        destination = os.path.join(self.temp_dir, 'copy.csv')

        self.recorder.export(state, destination)
        self.assertTrue(state.exported)
        self.assertEqual(_read_rows(destination), _read_rows(state.file_path))

        self.recorder.delete(state)
        self.assertFalse(os.path.exists(state.file_path))
        self.assertTrue(os.path.exists(destination))

    def test_start_failure_raises(self):
        blocker = os.path.join(self.temp_dir, 'blocker')
        with open(blocker, 'w') as f:
            f.write('x')
        recorder = Recorder(os.path.join(blocker, 'recordings'))

        with self.assertRaises(OSError):
            recorder.start(MinerInfo.from_reading(make_reading('10.0.0.1')))


class TestExportMinersCSV(unittest.TestCase):
    """Test registry export"""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.path = os.path.join(self.temp_dir, 'miners.csv')

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_export(self):
        miners = [MinerInfo.from_reading(make_reading('10.0.0.1')),
                  MinerInfo.from_reading(DeviceReading(ip='10.0.0.2'))]

        self.assertEqual(export_miners_csv(miners, self.path), 2)

        rows = _read_rows(self.path)
        self.assertEqual(rows[0], EXPORT_COLUMNS)
        self.assertEqual(rows[1][0], '10.0.0.1')
        self.assertEqual(rows[1][5:10], ['100.00', '3000', '30.0', '65.0', '5000'])
        self.assertEqual(rows[1][11], 'worker1')
        self.assertEqual(rows[2][5], 'N/A')

    def test_empty_export_writes_nothing(self):
        self.assertEqual(export_miners_csv([], self.path), 0)
        self.assertFalse(os.path.exists(self.path))


if __name__ == '__main__':
    unittest.main()
