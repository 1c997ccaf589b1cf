import json
import numpy as np
import pytest
from pydantic import ValidationError

from RPNTargets.config import LocalizationConfig
from RPNTargets.config import load_config
from RPNTargets.errors import ConfigError


class TestLoadConfig:
  def test_defaults(self):
    config = load_config({ "labels": [ "background", "person" ] })
    assert config.rois_per_image == 256
    assert config.base_size == 16
    assert config.ratios == [ 0.5, 1.0, 2.0 ]
    assert config.scales == [ 8.0, 16.0, 32.0 ]
    assert config.negative_overlap == 0.3
    assert config.positive_overlap == 0.7
    assert config.foreground_fraction == 0.5
    assert config.max_gt_boxes == 64
    assert config.grid_size == 62
    assert config.total_anchors == 9 * 62 * 62
    assert config.float_dtype == np.float32

  def test_label_map(self):
    config = load_config({ "labels": [ "cat", "dog", "bird" ] })
    assert config.label_map == { "cat": 0, "dog": 1, "bird": 2 }

  def test_missing_required(self):
    with pytest.raises(ConfigError) as e:
      load_config({})
    assert any(error.startswith("labels") for error in e.value.errors)

  def test_every_violation_reported(self):
    with pytest.raises(ConfigError) as e:
      load_config({ "labels": [ "x" ], "positive_overlap": 1.5, "rois_per_image": 0, "type_string": "int8", "ratios": [ -1.0 ] })
    fields = set([ error.split(":")[0] for error in e.value.errors ])
    assert fields == { "positive_overlap", "rois_per_image", "type_string", "ratios" }

  @pytest.mark.parametrize("options", [
    { "negative_overlap": 0.8, "positive_overlap": 0.7 },
    { "min_size": 1200, "max_size": 1000 },
    { "max_size": 10, "min_size": 10, "scaling_factor": 0.05 },
    { "labels": [ "x", "x" ] },
    { "labels": [] },
    { "scales": [] },
    { "foreground_fraction": -0.1 },
    { "unknown_option": 1 }
  ])
  def test_invalid(self, options):
    with pytest.raises(ConfigError):
      load_config(dict({ "labels": [ "x" ] }, **options))

  def test_not_a_mapping(self):
    with pytest.raises(ConfigError):
      load_config([ "labels" ])

  def test_frozen(self):
    config = load_config({ "labels": [ "x" ] })
    with pytest.raises(ValidationError):
      config.rois_per_image = 10

  def test_from_json(self, tmp_path):
    filepath = tmp_path / "config.json"
    filepath.write_text(json.dumps({ "labels": [ "x", "y" ], "rois_per_image": 128, "type_string": "double" }))
    config = LocalizationConfig.from_json(filepath)
    assert config.rois_per_image == 128
    assert config.float_dtype == np.float64

  def test_from_invalid_json(self, tmp_path):
    filepath = tmp_path / "config.json"
    filepath.write_text("{ labels")
    with pytest.raises(ConfigError):
      LocalizationConfig.from_json(filepath)
