"""
Gesture Trainer - Teachable hand gesture classifier.

This package turns MediaPipe hand landmarks into fixed-size feature vectors,
learns gestures from a handful of labeled examples (nearest-neighbor or a
small neural network), and emits a debounced gesture label stream that can
be broadcast over WebSocket.

The camera, landmark detector and transport are collaborators; the core is
the featurize -> classify -> stabilize pipeline.
"""

__version__ = "1.0.0"
