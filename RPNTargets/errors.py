#
# Faster R-CNN RPN Training Targets
# RPNTargets/errors.py
# Copyright 2021-2022 Bart Trzynadlowski
#
# Exceptions and warnings raised while generating RPN training targets.
# Configuration and buffer layout problems are structural and fatal. Decode
# problems only drop the sample in question.
#


class RPNTargetsError(Exception):
  pass

class ConfigError(RPNTargetsError, ValueError):
  """
  Raised when a configuration is missing a required field or a field fails
  validation. All violations are collected in `errors`, each formatted as
  "field: message".
  """
  def __init__(self, errors):
    self.errors = list(errors)
    super().__init__("Invalid configuration:\n  " + "\n  ".join(self.errors))

class DecodeError(RPNTargetsError):
  """
  Malformed annotation data. The sample is dropped.
  """
  pass

class DegenerateBoxError(RPNTargetsError, ValueError):
  """
  Box with inverted corners (xmin > xmax or ymin > ymax).
  """
  pass

class BufferSizeMismatch(RPNTargetsError):
  """
  An output buffer does not match the layout declared by the configuration.
  """
  pass

class InsufficientAnchorsWarning(UserWarning):
  pass
