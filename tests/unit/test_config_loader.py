"""
Unit Tests for run configuration loading and validation
"""

import dataclasses

import pytest
import yaml

from mtrip.controller.config_loader import ConfigLoader, MeterConfig, ReflectConfig


def write_yaml(tmp_path, data):
    path = tmp_path / 'mtrip.yaml'
    path.write_text(yaml.safe_dump(data))
    return str(path)


class TestConfigLoader:

    def test_load_meter(self, tmp_path):
        path = write_yaml(tmp_path, {
            'mode': 'meter',
            'host': 'reflector.example',
            'port': 5201,
            'probe_size': 512,
            'measurement_time': 5,
            'reply_timeout': 2.5,
        })
        config = ConfigLoader.load(path)

        assert isinstance(config, MeterConfig)
        assert config.host == 'reflector.example'
        assert config.probe_size == 512
        assert config.measurement_time == 5
        assert config.reply_timeout == 2.5
        assert config.initial_rate == 10_000
        assert config.initial_previous_rate == 100

    def test_load_reflect(self, tmp_path, monkeypatch):
        monkeypatch.delenv('MTRIP_METRICS_PORT', raising=False)
        config = ConfigLoader.load(write_yaml(tmp_path, {'mode': 'reflect', 'port': 5201}))

        assert config == ReflectConfig(port=5201)
        assert config.mode == 'reflect'

    def test_metrics_port_from_environment(self, monkeypatch):
        monkeypatch.setenv('MTRIP_METRICS_PORT', '9100')
        config = ConfigLoader.parse({'mode': 'reflect', 'port': 5201})
        assert config.metrics_port == 9100

    def test_file_overrides_environment(self, monkeypatch):
        monkeypatch.setenv('MTRIP_METRICS_PORT', '9100')
        config = ConfigLoader.parse({'mode': 'reflect', 'port': 5201, 'metrics_port': 9200})
        assert config.metrics_port == 9200

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            ConfigLoader.parse({'mode': 'mirror', 'port': 1})

    def test_missing_field(self):
        with pytest.raises(KeyError):
            ConfigLoader.parse({'mode': 'meter', 'host': 'h', 'port': 1})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigLoader.load(str(tmp_path / 'absent.yaml'))

    def test_merge_ignores_none(self):
        config = MeterConfig(host='a', port=1, probe_size=512, measurement_time=5)
        merged = ConfigLoader.merge(config, host=None, port=2)

        assert merged.host == 'a'
        assert merged.port == 2
        assert config.port == 1

    def test_config_is_frozen(self):
        config = ReflectConfig(port=5201)
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.port = 1


class TestValidation:

    def meter(self, **changes):
        base = MeterConfig(host='reflector.example', port=5201, probe_size=512, measurement_time=5)
        return dataclasses.replace(base, **changes)

    def test_valid_meter(self):
        assert ConfigLoader.validate(self.meter())

    def test_valid_reflect(self):
        assert ConfigLoader.validate(ReflectConfig(port=5201))

    @pytest.mark.parametrize('changes', [
        {'port': 0},
        {'port': 70000},
        {'host': ''},
        {'probe_size': 0},
        {'probe_size': 1},
        {'probe_size': 4},
        {'probe_size': 65508},
        {'measurement_time': 0},
        {'initial_rate': 0},
        {'reply_timeout': -1.0},
        {'metrics_port': 0},
    ])
    def test_invalid_meter(self, changes):
        assert not ConfigLoader.validate(self.meter(**changes))

    def test_invalid_reflect_port(self):
        assert not ConfigLoader.validate(ReflectConfig(port=-5))
