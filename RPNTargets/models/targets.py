#
# Faster R-CNN RPN Training Targets
# RPNTargets/models/targets.py
# Copyright 2021-2022 Bart Trzynadlowski
#
# RPN ground truth generation: anchor/ground truth overlaps, object and
# background labeling, box delta regression targets, and balanced sampling of
# a fixed-size mini-batch of anchors.
#
# Labels are per-anchor over the full anchor index space:
#
#   -1 = ignore (crosses image boundary, neutral overlap, or not sampled)
#    0 = background
#    1 = object
#

import logging
import numpy as np

from . import math_utils


logger = logging.getLogger(__name__)

IGNORE = -1
BACKGROUND = 0
OBJECT = 1


def compute_overlaps(anchors, gt_boxes):
  """
  Computes IoU between anchors and ground truth boxes. Degenerate boxes (with
  non-positive area) on either side have IoU 0 with everything.

  Parameters
  ----------
  anchors : np.ndarray
    Anchor corners, (N, 4).
  gt_boxes : np.ndarray
    Ground truth box corners, (M, 4).

  Returns
  -------
  np.ndarray
    IoU matrix, (N, M).
  """
  return math_utils.intersection_over_union(boxes1 = anchors, boxes2 = gt_boxes)

def assign_labels(num_anchors, valid_indices, overlaps, positive_overlap, negative_overlap):
  """
  Labels anchors as object, background, or ignored.

  Parameters
  ----------
  num_anchors : int
    Total number of anchors (size of the anchor index space).
  valid_indices : np.ndarray
    (N,) indices of anchors eligible for labeling.
  overlaps : np.ndarray
    (N, M) IoU between each valid anchor and each ground truth box.
  positive_overlap : float
    Anchors whose best IoU is at least this are objects.
  negative_overlap : float
    Anchors whose best IoU is below this are background.

  Returns
  -------
  np.ndarray, np.ndarray
    Labels for all anchors, (num_anchors,) int32, and the index of the best
    ground truth box for each anchor, (num_anchors,) int64, -1 where there is
    none. Ties between ground truth boxes go to the lowest box index.
  """
  labels = np.full(num_anchors, IGNORE, dtype = np.int32)
  gt_assignments = np.full(num_anchors, -1, dtype = np.int64)
  if len(valid_indices) == 0:
    return labels, gt_assignments

  # Without ground truth boxes every valid anchor is background
  if overlaps.shape[1] == 0:
    labels[valid_indices] = BACKGROUND
    return labels, gt_assignments

  # Best IoU ground truth box for each anchor and best IoU anchor(s) for each
  # ground truth box. All anchors tied for a box's highest IoU are selected.
  # Boxes no valid anchor overlaps at all have no best anchor.
  max_iou_per_anchor = np.max(overlaps, axis = 1)                                   # (N,)
  best_box_idx_per_anchor = np.argmax(overlaps, axis = 1)                           # (N,)
  max_iou_per_gt_box = np.max(overlaps, axis = 0)                                   # (M,)
  best_anchor_mask = np.any((overlaps == max_iou_per_gt_box) & (max_iou_per_gt_box > 0), axis = 1)  # (N,)

  valid_labels = np.full(len(valid_indices), IGNORE, dtype = np.int32)
  valid_labels[max_iou_per_anchor < negative_overlap] = BACKGROUND
  valid_labels[max_iou_per_anchor >= positive_overlap] = OBJECT
  valid_labels[best_anchor_mask] = OBJECT

  labels[valid_indices] = valid_labels
  gt_assignments[valid_indices] = best_box_idx_per_anchor
  return labels, gt_assignments

def compute_targets(anchors, gt_boxes):
  """
  Computes box delta regression targets (dx, dy, dw, dh) from each anchor to
  its matched ground truth box.

  Parameters
  ----------
  anchors : np.ndarray
    Anchor corners, (N, 4).
  gt_boxes : np.ndarray
    Matched ground truth box corners, (N, 4).

  Returns
  -------
  np.ndarray
    Regression targets, (N, 4).
  """
  if len(anchors) == 0:
    return np.zeros((0, 4))
  return math_utils.compute_box_deltas(anchors = anchors, gt_boxes = gt_boxes)

def sample_anchors(labels, rois_per_image, foreground_fraction, rng):
  """
  Selects a balanced mini-batch of anchors, modifying labels in place so that
  anchors that were not selected become ignored.

  Up to floor(rois_per_image * foreground_fraction) object anchors are kept.
  The remainder of the mini-batch is filled with background anchors. If there
  are not enough background anchors, all of them are used and the mini-batch
  is smaller than rois_per_image.

  Parameters
  ----------
  labels : np.ndarray
    (num_anchors,) labels. Modified in place.
  rois_per_image : int
    Mini-batch size.
  foreground_fraction : float
    Upper bound on the fraction of the mini-batch that may be object anchors.
  rng : np.random.Generator
    Random source. Identical generator state and labels produce an identical
    mini-batch.

  Returns
  -------
  np.ndarray
    Sorted indices of all anchors in the mini-batch.
  """
  # Subsample objects if we have too many
  num_foreground = int(np.floor(rois_per_image * foreground_fraction))
  foreground_indices = np.where(labels == OBJECT)[0]
  if len(foreground_indices) > num_foreground:
    disabled = rng.choice(foreground_indices, size = len(foreground_indices) - num_foreground, replace = False)
    labels[disabled] = IGNORE

  # Fill the rest with background
  num_background = rois_per_image - int(np.sum(labels == OBJECT))
  background_indices = np.where(labels == BACKGROUND)[0]
  if len(background_indices) > num_background:
    disabled = rng.choice(background_indices, size = len(background_indices) - num_background, replace = False)
    labels[disabled] = IGNORE

  return np.where(labels >= 0)[0]
