"""Tests for the command line watcher."""

import io
from unittest.mock import patch

import pytest

from blewatch.__main__ import main, print_event, run_watch
from blewatch.bluetooth import (
    AdvertisementSourceError,
    DeviceRecord,
    DiscoveryTracker,
    EventKind,
    TrackerEvent,
)

from conftest import ADDR_A, make_sighting


class BrokenSource:
    def start(self, on_sighting, on_stopped):
        raise AdvertisementSourceError("Bluetooth adapter is powered off")

    def stop(self):
        pass


def record(name='Foo', rssi=-60):
    return DeviceRecord.from_sighting(make_sighting(ADDR_A, name, rssi=rssi))


class TestPrintEvent:
    """Tests for console event rendering."""

    def test_new_device(self, capsys):
        print_event(TrackerEvent(EventKind.NEW_DEVICE_DISCOVERED, record()))

        assert capsys.readouterr().out == 'New device: Foo [AA:BB:CC:DD:EE:01] (-60)\n'

    def test_unnamed_device_timed_out(self, capsys):
        print_event(TrackerEvent(EventKind.DEVICE_TIMED_OUT, record(name='')))

        assert capsys.readouterr().out == 'Device timed out: [No Name] [AA:BB:CC:DD:EE:01] (-60)\n'

    def test_lifecycle(self, capsys):
        print_event(TrackerEvent(EventKind.STARTED))
        print_event(TrackerEvent(EventKind.STOPPED))

        assert capsys.readouterr().out == 'Started listening\nStopped listening\n'

    def test_plain_sighting_is_silent(self, capsys):
        print_event(TrackerEvent(EventKind.DEVICE_DISCOVERED, record()))

        assert capsys.readouterr().out == ''


class TestRunWatch:
    """Tests for the interactive loop."""

    def test_list_then_quit(self, tracker, monkeypatch, capsys):
        monkeypatch.setattr('sys.stdin', io.StringIO('\nq\n'))

        def feed(event):
            if event.kind == EventKind.STARTED:
                tracker.on_sighting(make_sighting(ADDR_A, 'Foo'))

        tracker.subscribe(feed)

        assert run_watch(tracker) == 0

        out = capsys.readouterr().out
        assert 'Started listening' in out
        assert 'New device: Foo [AA:BB:CC:DD:EE:01] (-60)' in out
        assert '1 devices....' in out
        assert 'Stopped listening' in out
        assert tracker.is_closed

    def test_pair_unsupported(self, tracker, monkeypatch, capsys):
        monkeypatch.setattr('sys.stdin', io.StringIO('p AA:BB:CC:DD:EE:01\nq\n'))

        assert run_watch(tracker) == 0

        assert 'Failed to pair with AA:BB:CC:DD:EE:01' in capsys.readouterr().out

    def test_start_failure(self, clock, monkeypatch, capsys):
        tracker = DiscoveryTracker(source=BrokenSource(), sweep_interval=None, clock=clock)
        monkeypatch.setattr('sys.stdin', io.StringIO('q\n'))
        try:
            assert run_watch(tracker) == 1
        finally:
            tracker.close()

        assert 'powered off' in capsys.readouterr().err


class TestMain:
    """Tests for argument handling."""

    def test_watch_options(self, tracker, monkeypatch):
        monkeypatch.setattr('sys.stdin', io.StringIO('q\n'))

        with patch('blewatch.__main__.build_tracker', return_value=tracker) as build:
            assert main(['watch', '--timeout', '7', '--passive', '--adapter', 'hci1']) == 0

        config = build.call_args.args[0]
        assert config.heartbeat_timeout == 7.0
        assert config.scanning_mode == 'passive'
        assert config.adapter == 'hci1'

    def test_command_required(self):
        with pytest.raises(SystemExit):
            main([])
