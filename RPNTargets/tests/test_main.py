import argparse
import json
import numpy as np
import pytest

from RPNTargets import __main__ as main


def _write_annotation(path, boxes):
  objects = [ { "name": "dog", "difficult": 0, "bndbox": { "xmin": x1, "ymin": y1, "xmax": x2, "ymax": y2 } } for (x1, y1, x2, y2) in boxes ]
  path.write_text(json.dumps({ "size": { "width": 64, "height": 64, "depth": 3 }, "object": objects }))

def _options(annotations, **kwargs):
  values = {
    "annotations": str(annotations),
    "num_samples": None,
    "seed": None,
    "log_csv": None,
    "dump_anchors": None,
    "save_to": None
  }
  values.update(kwargs)
  return argparse.Namespace(**values)


def test_non_negative_int():
  assert main.non_negative_int("0") == 0
  assert main.non_negative_int("42") == 42
  with pytest.raises(argparse.ArgumentTypeError):
    main.non_negative_int("-1")
  with pytest.raises(ValueError):
    main.non_negative_int("seven")

def test_find_annotations_sorted(tmp_path):
  for name in [ "b.json", "a.xml", "c.txt", "A.JSON" ]:
    (tmp_path / name).write_text("")
  assert [ path.name for path in main.find_annotations(tmp_path) ] == [ "A.JSON", "a.xml", "b.json" ]

def test_generate(small_config, tmp_path, monkeypatch):
  annotations = tmp_path / "annotations"
  annotations.mkdir()
  _write_annotation(annotations / "000001.json", [ (0, 0, 16, 16) ])
  _write_annotation(annotations / "000002.json", [ (16, 16, 48, 48), (4, 4, 20, 20) ])
  (annotations / "000003.json").write_text("{ not json")
  options = _options(
    annotations,
    seed = 3,
    log_csv = str(tmp_path / "stats.csv"),
    dump_anchors = str(tmp_path / "renders"),
    save_to = str(tmp_path / "targets.npz")
  )
  monkeypatch.setattr(main, "options", options, raising = False)

  main.generate(config = small_config)

  lines = (tmp_path / "stats.csv").read_text().splitlines()
  assert lines[0] == "file,gt_boxes,object_anchors,background_anchors,sampled_anchors,image_scale"
  assert [ line.split(",")[0] for line in lines[1:] ] == [ "000001.json", "000002.json" ]
  assert sorted(path.name for path in (tmp_path / "renders").iterdir()) == [ "anchors_000001.png", "anchors_000002.png" ]
  with np.load(tmp_path / "targets.npz") as outputs:
    assert outputs["labels"].shape == (2, small_config.total_anchors)
    assert outputs["num_gt_boxes"].reshape(-1).tolist() == [ 1, 2 ]
    assert outputs["labels"][0][0] == 1

def test_generate_num_samples(small_config, tmp_path, monkeypatch):
  _write_annotation(tmp_path / "000001.json", [ (0, 0, 16, 16) ])
  _write_annotation(tmp_path / "000002.json", [ (0, 0, 16, 16) ])
  monkeypatch.setattr(main, "options", _options(tmp_path, num_samples = 1, save_to = str(tmp_path / "targets.npz")), raising = False)
  main.generate(config = small_config)
  with np.load(tmp_path / "targets.npz") as outputs:
    assert outputs["labels"].shape == (1, small_config.total_anchors)
