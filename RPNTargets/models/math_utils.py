#
# Faster R-CNN RPN Training Targets
# RPNTargets/models/math_utils.py
# Copyright 2021-2022 Bart Trzynadlowski
#
# Math helper functions. All boxes are stored as corners (x1, y1, x2, y2) in
# continuous pixel coordinates, so that width = x2 - x1.
#

import numpy as np


def box_areas(boxes):
  """
  Parameters
  ----------
  boxes : np.ndarray
    Box corners, shaped (N, 4), with each box as (x1, y1, x2, y2).

  Returns
  -------
  np.ndarray
    Areas, shaped (N,). Inverted boxes produce non-positive areas.
  """
  sides = boxes[:,2:4] - boxes[:,0:2]
  return np.where(np.all(sides > 0, axis = 1), np.prod(sides, axis = 1), 0.0)

def intersection_over_union(boxes1, boxes2):
  """
  Computes intersection-over-union (IoU) for multiple boxes in parallel.
  Boxes that merely touch have no intersection. Pairs whose union is empty
  (both boxes degenerate) produce 0.

  Parameters
  ----------
  boxes1 : np.ndarray
    Box corners, shaped (N, 4), with each box as (x1, y1, x2, y2).
  boxes2 : np.ndarray
    Box corners, shaped (M, 4).

  Returns
  -------
  np.ndarray
    IoUs for each pair of boxes in boxes1 and boxes2, shaped (N, M).
  """
  boxes1 = np.asarray(boxes1, dtype = np.float64).reshape((-1, 4))
  boxes2 = np.asarray(boxes2, dtype = np.float64).reshape((-1, 4))
  top_left_point = np.maximum(boxes1[:,None,0:2], boxes2[:,0:2])                                  # (N,1,2) and (M,2) -> (N,M,2) indicating top-left corners of box pairs
  bottom_right_point = np.minimum(boxes1[:,None,2:4], boxes2[:,2:4])                              # "" bottom-right corners ""
  well_ordered_mask = np.all(top_left_point < bottom_right_point, axis = 2)                       # (N,M) indicating whether the boxes intersect
  intersection_areas = well_ordered_mask * np.prod(bottom_right_point - top_left_point, axis = 2) # (N,M) indicating intersection area
  areas1 = box_areas(boxes1)                                                                      # (N,)
  areas2 = box_areas(boxes2)                                                                      # (M,)
  union_areas = areas1[:,None] + areas2 - intersection_areas                                      # (N,1) + (M,) - (N,M) = (N,M)
  ious = np.zeros(union_areas.shape)
  np.divide(intersection_areas, union_areas, out = ious, where = union_areas > 0)
  return np.clip(ious, 0.0, 1.0)

def corners_to_centers(boxes):
  """
  Converts corners (x1, y1, x2, y2) to (center_x, center_y, width, height).
  """
  centers = np.empty(boxes.shape, dtype = np.float64)
  centers[:,0:2] = 0.5 * (boxes[:,0:2] + boxes[:,2:4])
  centers[:,2:4] = boxes[:,2:4] - boxes[:,0:2]
  return centers

def compute_box_deltas(anchors, gt_boxes):
  """
  Encodes the regression targets that transform each anchor into its
  corresponding ground truth box, as described by the Fast R-CNN and Faster
  R-CNN papers.

  Parameters
  ----------
  anchors : np.ndarray
    Anchor corners, shaped (N, 4), each row (x1, y1, x2, y2). Must have
    positive area.
  gt_boxes : np.ndarray
    Ground truth box corners matched to each anchor, shaped (N, 4). Must have
    positive area.

  Returns
  -------
  np.ndarray
    Box deltas, shaped (N, 4), each row (dx, dy, dw, dh).
  """
  anchors = corners_to_centers(np.asarray(anchors, dtype = np.float64).reshape((-1, 4)))
  gt_boxes = corners_to_centers(np.asarray(gt_boxes, dtype = np.float64).reshape((-1, 4)))
  deltas = np.empty(anchors.shape, dtype = np.float64)
  deltas[:,0:2] = (gt_boxes[:,0:2] - anchors[:,0:2]) / anchors[:,2:4]  # dx = (gt_center_x - anchor_center_x) / anchor_width, dy likewise with height
  deltas[:,2:4] = np.log(gt_boxes[:,2:4] / anchors[:,2:4])             # dw = log(gt_width / anchor_width), dh = log(gt_height / anchor_height)
  return deltas

def convert_deltas_to_boxes(box_deltas, anchors):
  """
  Converts box deltas (dx, dy, dw, dh) back to boxes. This is the inverse of
  compute_box_deltas().

  Parameters
  ----------
  box_deltas : np.ndarray
    Box deltas with shape (N, 4). Each row is (dx, dy, dw, dh).
  anchors : np.ndarray
    Anchor corners the deltas are relative to, shaped (N, 4).

  Returns
  -------
  np.ndarray
    Box corners, (N, 4), with each row being (x1, y1, x2, y2).
  """
  box_deltas = np.asarray(box_deltas, dtype = np.float64).reshape((-1, 4))
  anchors = corners_to_centers(np.asarray(anchors, dtype = np.float64).reshape((-1, 4)))
  center = anchors[:,2:4] * box_deltas[:,0:2] + anchors[:,0:2]  # center_x = anchor_width * dx + anchor_center_x, center_y likewise
  size = anchors[:,2:4] * np.exp(box_deltas[:,2:4])             # width = anchor_width * exp(dw), height = anchor_height * exp(dh)
  boxes = np.empty(box_deltas.shape)
  boxes[:,0:2] = center - 0.5 * size  # x1, y1
  boxes[:,2:4] = center + 0.5 * size  # x2, y2
  return boxes
