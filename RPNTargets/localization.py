#
# Faster R-CNN RPN Training Targets
# RPNTargets/localization.py
# Copyright 2021-2022 Bart Trzynadlowski
#
# Extract/transform/load stages producing RPN training targets for one image:
#
#   - Extractor decodes annotation bytes into ground truth boxes.
#   - Transformer labels the anchors, computes regression targets, and samples
#     a balanced mini-batch of anchors.
#   - Loader copies the results into fixed-size output buffers whose layout is
#     given by output_shapes().
#
# The configuration and anchor grid are shared read-only. Everything else is
# created per call, so different samples may be processed concurrently.
#

from collections.abc import Mapping
from dataclasses import dataclass
import logging
import numpy as np
import torch as t
import warnings
from typing import List

from . import interface
from .datasets import boundingbox
from .datasets.image import compute_image_params
from .datasets.training_sample import DecodedSample
from .errors import BufferSizeMismatch
from .errors import DecodeError
from .errors import InsufficientAnchorsWarning
from .models import anchors as anchor_generator
from .models import targets


logger = logging.getLogger(__name__)


def make_rng(seed, sample_index):
  """
  Creates an independent random generator for one sample. The same seed and
  sample index always produce the same sequence.
  """
  return np.random.default_rng(np.random.SeedSequence([ int(seed), int(sample_index) ]))


class Extractor(interface.Extractor):
  def __init__(self, config, decoder = None):
    self._config = config
    self._decoder = decoder if decoder is not None else boundingbox.Decoder(label_map = config.label_map)

  def extract(self, data):
    """
    Decodes an annotation. Boxes beyond config.max_gt_boxes are dropped,
    keeping annotation order.

    Parameters
    ----------
    data : bytes
      Encoded annotation.

    Returns
    -------
    DecodedSample
      Decoded sample, or None if the annotation could not be decoded.
    """
    try:
      gt_boxes, info = self._decoder.decode(data)
    except DecodeError as e:
      logger.warning("Dropping sample: %s" % e)
      return None
    max_gt_boxes = self._config.max_gt_boxes
    if len(gt_boxes) > max_gt_boxes:
      logger.warning("Annotation has %d ground truth boxes; keeping first %d" % (len(gt_boxes), max_gt_boxes))
      gt_boxes = gt_boxes[0:max_gt_boxes]
    return DecodedSample(
      gt_boxes = gt_boxes,
      image_width = info.width,
      image_height = info.height,
      image_depth = info.depth
    )


class Transformer(interface.Transformer):
  def __init__(self, config, anchors = None):
    """
    Parameters
    ----------
    config : RPNTargets.config.LocalizationConfig
      Configuration.
    anchors : np.ndarray
      Anchor grid for this configuration. Generated if not supplied. Must not
      be modified afterwards.
    """
    self._config = config
    self._anchors = anchors if anchors is not None else anchor_generator.generate_anchors(config)
    if self._anchors.shape != (config.total_anchors, 4):
      raise ValueError("Anchor grid has shape %s but configuration requires (%d, 4)" % (str(self._anchors.shape), config.total_anchors))

  @property
  def anchors(self):
    return self._anchors

  def transform(self, params, decoded, rng = None):
    """
    Generates labels, regression targets, and the sampled anchor mini-batch
    for a decoded sample, which is updated in place.

    Parameters
    ----------
    params : RPNTargets.datasets.image.ImageParams
      Scale and output size of the image. If None, computed from the
      annotated image size and the configuration.
    decoded : DecodedSample
      Sample produced by Extractor.extract(). If None, None is returned. A
      sample may be transformed only once.
    rng : np.random.Generator
      Random source for sampling. If None, a new generator seeded with
      config.seed is used. Must not be shared between concurrent calls.

    Returns
    -------
    DecodedSample
      The same sample, with gt_boxes scaled to the output image and labels,
      bbox_targets, anchor_index, image_scale, and output_image_size set.
    """
    if decoded is None:
      return None
    if decoded.labels is not None:
      raise ValueError("Sample has already been transformed")
    cfg = self._config
    if params is None:
      params = compute_image_params(original_width = decoded.image_width, original_height = decoded.image_height, min_size = cfg.min_size, max_size = cfg.max_size)
    if rng is None:
      rng = np.random.default_rng(cfg.seed)
    all_anchors = self._anchors
    num_anchors = all_anchors.shape[0]

    # Scale ground truth boxes to output image and set aside degenerate ones,
    # which cannot be matched
    gt_boxes = [ box.scaled(params.scale) for box in decoded.gt_boxes ]
    usable_gt_boxes = [ box for box in gt_boxes if box.area > 0 ]
    if len(usable_gt_boxes) < len(gt_boxes):
      logger.debug("Excluding %d ground truth boxes with zero area" % (len(gt_boxes) - len(usable_gt_boxes)))
    gt_corners = np.array([ box.corners for box in usable_gt_boxes ], dtype = np.float64).reshape((-1, 4))

    # Label anchors that lie within the image
    valid_indices = anchor_generator.inside_image_bounds(width = params.output_width, height = params.output_height, anchors = all_anchors)
    overlaps = targets.compute_overlaps(anchors = all_anchors[valid_indices], gt_boxes = gt_corners)
    labels, gt_assignments = targets.assign_labels(
      num_anchors = num_anchors,
      valid_indices = valid_indices,
      overlaps = overlaps,
      positive_overlap = cfg.positive_overlap,
      negative_overlap = cfg.negative_overlap
    )

    # Sample mini-batch
    anchor_index = targets.sample_anchors(
      labels = labels,
      rois_per_image = cfg.rois_per_image,
      foreground_fraction = cfg.foreground_fraction,
      rng = rng
    )

    # Regression targets for the sampled object anchors only
    bbox_targets = np.zeros((num_anchors, 4), dtype = np.float32)
    object_indices = np.where(labels == targets.OBJECT)[0]
    if len(object_indices) > 0:
      bbox_targets[object_indices] = targets.compute_targets(anchors = all_anchors[object_indices], gt_boxes = gt_corners[gt_assignments[object_indices]])

    decoded.gt_boxes = gt_boxes
    decoded.labels = labels
    decoded.bbox_targets = bbox_targets
    decoded.anchor_index = anchor_index
    decoded.image_scale = params.scale
    decoded.output_image_size = params.output_size
    decoded.insufficient_anchors = len(anchor_index) < cfg.rois_per_image
    if decoded.insufficient_anchors:
      warnings.warn("Only %d of %d anchors could be sampled (%d valid)" % (len(anchor_index), cfg.rois_per_image, len(valid_indices)), InsufficientAnchorsWarning)
    return decoded


@dataclass(frozen = True)
class BufferSpec:
  name: str
  dtype: np.dtype
  count: int

  @property
  def torch_dtype(self):
    return t.from_numpy(np.empty(0, dtype = self.dtype)).dtype

def output_shapes(config) -> List[BufferSpec]:
  """
  Returns the output buffer layout, in order, for a configuration. Floating
  point buffers use config.type_string; all others are int32.
  """
  float_type = config.float_dtype
  int_type = np.dtype(np.int32)
  total_anchors = config.total_anchors
  max_gt_boxes = config.max_gt_boxes
  return [
    BufferSpec(name = "bbtargets", dtype = float_type, count = total_anchors * 4),       # (dx,dy,dw,dh) per anchor
    BufferSpec(name = "bbtargets_mask", dtype = float_type, count = total_anchors * 4),  # 1 for sampled object anchors
    BufferSpec(name = "labels", dtype = int_type, count = total_anchors),                # -1, 0, 1 per anchor
    BufferSpec(name = "labels_mask", dtype = int_type, count = total_anchors),           # 1 for sampled anchors
    BufferSpec(name = "im_shape", dtype = int_type, count = 2),                          # output (width,height)
    BufferSpec(name = "gt_boxes", dtype = float_type, count = max_gt_boxes * 4),         # (x1,y1,x2,y2), zero padded
    BufferSpec(name = "num_gt_boxes", dtype = int_type, count = 1),
    BufferSpec(name = "gt_classes", dtype = int_type, count = max_gt_boxes),
    BufferSpec(name = "im_scale", dtype = float_type, count = 1),
    BufferSpec(name = "gt_difficult", dtype = int_type, count = max_gt_boxes)
  ]

def allocate_buffers(config):
  """
  Allocates zeroed CPU tensors matching output_shapes(config), in order.
  """
  return [ t.zeros(spec.count, dtype = spec.torch_dtype) for spec in output_shapes(config) ]


class Loader(interface.Loader):
  def __init__(self, config):
    self._config = config
    self._shapes = output_shapes(config)

  @property
  def shapes(self):
    return self._shapes

  def load(self, buffers, decoded):
    """
    Copies a transformed sample into output buffers. All buffers are checked
    before anything is written.

    Parameters
    ----------
    buffers : List[torch.Tensor | np.ndarray] | Mapping[str, torch.Tensor | np.ndarray]
      Contiguous output buffers, either in output_shapes() order or keyed by
      name.
    decoded : DecodedSample
      Sample produced by Transformer.transform().

    Raises
    ------
    BufferSizeMismatch
      If a buffer is missing, has the wrong element count or type, or the
      sample does not match the configured anchor count.
    """
    buffers = self._match_buffers(buffers)
    for spec, buffer in zip(self._shapes, buffers):
      self._check_buffer(spec, buffer)
    outputs = self._build_outputs(decoded)
    for spec, buffer in zip(self._shapes, buffers):
      _copy_into(buffer = buffer, data = outputs[spec.name].astype(spec.dtype, copy = False))

  def _match_buffers(self, buffers):
    if isinstance(buffers, Mapping):
      missing = [ spec.name for spec in self._shapes if spec.name not in buffers ]
      if len(missing) > 0:
        raise BufferSizeMismatch("Missing output buffers: %s" % ", ".join(missing))
      return [ buffers[spec.name] for spec in self._shapes ]
    buffers = list(buffers)
    if len(buffers) != len(self._shapes):
      raise BufferSizeMismatch("Expected %d output buffers but got %d" % (len(self._shapes), len(buffers)))
    return buffers

  @staticmethod
  def _check_buffer(spec, buffer):
    if isinstance(buffer, t.Tensor):
      count, dtype_ok, contiguous = buffer.numel(), buffer.dtype == spec.torch_dtype, buffer.is_contiguous()
    elif isinstance(buffer, np.ndarray):
      count, dtype_ok, contiguous = buffer.size, buffer.dtype == spec.dtype, buffer.flags.c_contiguous
    else:
      raise BufferSizeMismatch("Output buffer '%s' has unsupported type %s" % (spec.name, type(buffer).__name__))
    if count != spec.count:
      raise BufferSizeMismatch("Output buffer '%s' holds %d elements but layout requires %d" % (spec.name, count, spec.count))
    if not dtype_ok:
      raise BufferSizeMismatch("Output buffer '%s' has type %s but layout requires %s" % (spec.name, str(buffer.dtype), str(spec.dtype)))
    if not contiguous:
      raise BufferSizeMismatch("Output buffer '%s' is not contiguous" % spec.name)

  def _build_outputs(self, decoded):
    total_anchors = self._config.total_anchors
    max_gt_boxes = self._config.max_gt_boxes
    if decoded.labels is None or decoded.bbox_targets is None:
      raise ValueError("Sample has not been transformed")
    if decoded.labels.shape != (total_anchors,) or decoded.bbox_targets.shape != (total_anchors, 4):
      raise BufferSizeMismatch("Sample has %d anchors but configuration requires %d" % (decoded.labels.shape[0], total_anchors))
    if len(decoded.gt_boxes) > max_gt_boxes:
      raise BufferSizeMismatch("Sample has %d ground truth boxes but configuration allows %d" % (len(decoded.gt_boxes), max_gt_boxes))

    labels = decoded.labels
    bbtargets_mask = np.zeros((total_anchors, 4))
    bbtargets_mask[labels == targets.OBJECT] = 1

    num_gt_boxes = len(decoded.gt_boxes)
    gt_boxes = np.zeros((max_gt_boxes, 4))
    gt_classes = np.zeros(max_gt_boxes)
    gt_difficult = np.zeros(max_gt_boxes)
    for i, box in enumerate(decoded.gt_boxes):
      gt_boxes[i] = box.corners
      gt_classes[i] = box.class_index
      gt_difficult[i] = int(box.difficult)

    return {
      "bbtargets": decoded.bbox_targets.reshape(-1),
      "bbtargets_mask": bbtargets_mask.reshape(-1),
      "labels": labels,
      "labels_mask": (labels >= 0).astype(np.int32),
      "im_shape": np.array(decoded.output_image_size),
      "gt_boxes": gt_boxes.reshape(-1),
      "num_gt_boxes": np.array([ num_gt_boxes ]),
      "gt_classes": gt_classes,
      "im_scale": np.array([ decoded.image_scale ]),
      "gt_difficult": gt_difficult
    }


def _copy_into(buffer, data):
  data = np.ascontiguousarray(data.reshape(-1))
  if isinstance(buffer, t.Tensor):
    buffer.view(-1).copy_(t.from_numpy(data))
  else:
    buffer.reshape(-1)[:] = data
