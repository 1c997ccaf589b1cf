import pytest

from RPNTargets.config import load_config


@pytest.fixture
def grid_config():
  """
  32x32 image, one 16x16 anchor per pixel: 1024 anchors.
  """
  return load_config({
    "labels": [ "cat", "dog" ],
    "min_size": 32,
    "max_size": 32,
    "base_size": 16,
    "scaling_factor": 1.0,
    "ratios": [ 1.0 ],
    "scales": [ 1.0 ],
    "rois_per_image": 256,
    "max_gt_boxes": 4
  })

@pytest.fixture
def small_config():
  """
  64x64 image, 4x4 grid with a stride of 16 pixels and 2 anchors per cell.
  """
  return load_config({
    "labels": [ "cat", "dog" ],
    "min_size": 64,
    "max_size": 64,
    "base_size": 16,
    "scaling_factor": 1.0 / 16.0,
    "ratios": [ 1.0 ],
    "scales": [ 1.0, 2.0 ],
    "rois_per_image": 8,
    "max_gt_boxes": 3
  })
