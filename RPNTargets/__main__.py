#
# Faster R-CNN RPN Training Targets
# RPNTargets/__main__.py
# Copyright 2021-2022 Bart Trzynadlowski
#
# Main module. Runs the extract/transform/load stages over a directory of
# annotation files, e.g.:
#
# python -m RPNTargets --config config.json --annotations VOCdevkit/VOC2007/Annotations --log-csv stats.csv
#

import argparse
import logging
import numpy as np
import os
from pathlib import Path
from tqdm import tqdm

from .config import LocalizationConfig
from .config import load_config
from .localization import Extractor
from .localization import Loader
from .localization import Transformer
from .localization import allocate_buffers
from .localization import make_rng
from .localization import output_shapes
from .utils import CSVLog
from . import visualize


def non_negative_int(value):
  number = int(value)
  if number < 0:
    raise argparse.ArgumentTypeError("must be non-negative: %s" % value)
  return number

def find_annotations(dir):
  paths = [ path for path in Path(dir).iterdir() if path.suffix.lower() in (".json", ".xml") ]
  return sorted(paths)

def generate(config):
  filepaths = find_annotations(options.annotations)
  if options.num_samples is not None:
    filepaths = filepaths[0:options.num_samples]
  extractor = Extractor(config)
  transformer = Transformer(config)
  loader = Loader(config)
  shapes = output_shapes(config)
  seed = config.seed if options.seed is None else options.seed

  print("Target Generation Parameters")
  print("----------------------------")
  print("Annotations       : %s (%d files)" % (options.annotations, len(filepaths)))
  print("Classes           : %d" % len(config.labels))
  print("Anchors           : %d (%dx%d grid, %d per cell)" % (config.total_anchors, config.grid_size, config.grid_size, config.num_reference_anchors))
  print("RoIs per image    : %d" % config.rois_per_image)
  print("Overlaps          : background < %1.2f, object >= %1.2f" % (config.negative_overlap, config.positive_overlap))
  print("Seed              : %d" % seed)
  print("CSV log           : %s" % ("none" if not options.log_csv else options.log_csv))
  print("Anchor renderings : %s" % ("none" if not options.dump_anchors else options.dump_anchors))
  print("Output file       : %s" % ("none" if not options.save_to else options.save_to))

  if options.log_csv:
    csv = CSVLog(options.log_csv)
  if options.dump_anchors and not os.path.exists(options.dump_anchors):
    os.makedirs(options.dump_anchors)

  outputs = { spec.name: [] for spec in shapes }
  num_dropped = 0
  num_short = 0
  for i, filepath in enumerate(tqdm(iterable = filepaths)):
    with open(filepath, "rb") as fp:
      data = fp.read()
    decoded = extractor.extract(data)
    if decoded is None:
      num_dropped += 1
      continue
    decoded.filepath = str(filepath)
    decoded = transformer.transform(params = None, decoded = decoded, rng = make_rng(seed = seed, sample_index = i))
    buffers = allocate_buffers(config)
    loader.load(buffers = buffers, decoded = decoded)
    if decoded.insufficient_anchors:
      num_short += 1
    if options.log_csv:
      csv.log({
        "file": os.path.basename(filepath),
        "gt_boxes": len(decoded.gt_boxes),
        "object_anchors": decoded.num_foreground,
        "background_anchors": decoded.num_background,
        "sampled_anchors": len(decoded.anchor_index),
        "image_scale": decoded.image_scale
      })
    if options.dump_anchors:
      output_path = os.path.join(options.dump_anchors, "anchors_" + filepath.stem + ".png")
      visualize.show_anchors(output_path = output_path, decoded = decoded, anchors = transformer.anchors)
    if options.save_to:
      for spec, buffer in zip(shapes, buffers):
        outputs[spec.name].append(buffer.numpy())

  print("Processed %d samples (%d dropped, %d with fewer than %d anchors)" % (len(filepaths) - num_dropped, num_dropped, num_short, config.rois_per_image))
  if options.save_to:
    np.savez(options.save_to, **{ name: np.stack(values) if len(values) > 0 else np.zeros((0,)) for (name, values) in outputs.items() })
    print("Saved output buffers to '%s'" % options.save_to)

if __name__ == "__main__":
  parser = argparse.ArgumentParser("RPNTargets")
  parser.add_argument("--config", metavar = "file", action = "store", help = "JSON configuration file")
  parser.add_argument("--labels", metavar = "names", action = "store", help = "Comma-separated class names (used when no configuration file is given)")
  parser.add_argument("--annotations", metavar = "dir", action = "store", required = True, help = "Directory of JSON or VOC XML annotation files")
  parser.add_argument("--seed", metavar = "value", type = non_negative_int, action = "store", help = "Base random seed for anchor sampling (overrides configuration)")
  parser.add_argument("--num-samples", metavar = "count", type = non_negative_int, action = "store", help = "Number of annotation files to process")
  parser.add_argument("--log-csv", metavar = "file", action = "store", help = "Log per-sample statistics to CSV file")
  parser.add_argument("--dump-anchors", metavar = "dir", action = "store", help = "Render object anchors and ground truth boxes for each sample to a directory")
  parser.add_argument("--save-to", metavar = "file", action = "store", help = "Save all output buffers to a NumPy .npz file")
  parser.add_argument("--verbose", action = "store_true", help = "Enable debug logging")
  options = parser.parse_args()

  logging.basicConfig(level = logging.DEBUG if options.verbose else logging.INFO, format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

  assert options.config or options.labels, "Either --config or --labels must be given"
  if options.config:
    config = LocalizationConfig.from_json(options.config)
  else:
    config = load_config({ "labels": [ name.strip() for name in options.labels.split(",") ] })

  generate(config = config)
