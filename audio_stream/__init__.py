"""
Audio stream for the bridge.

Capture device -> AudioSource -> StreamPipeline -> SharedPlayer taps.

Only one pipeline runs per process; the capture device stays open for the
whole process lifetime and voice connections attach to and detach from the
shared player.
"""
