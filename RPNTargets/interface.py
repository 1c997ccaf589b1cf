#
# Faster R-CNN RPN Training Targets
# RPNTargets/interface.py
# Copyright 2021-2022 Bart Trzynadlowski
#
# Three-stage extract/transform/load contract. A data pipeline driver calls
# extract() on raw bytes, transform() on the decoded result together with the
# image transform parameters, and load() to copy the result into the output
# buffers consumed by training.
#

from abc import ABC
from abc import abstractmethod


class Extractor(ABC):
  @abstractmethod
  def extract(self, data):
    """
    Decodes raw bytes. Returns None if the data could not be decoded.
    """
    pass

class Transformer(ABC):
  @abstractmethod
  def transform(self, params, decoded):
    pass

class Loader(ABC):
  @abstractmethod
  def load(self, buffers, decoded):
    pass
