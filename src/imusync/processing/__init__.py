"""This is the processing submodule.

This module contains the synchronization and playback core: the stream
synchronizer, the windowed view computation, pose post-processing, the tracking
loop and the project state store.
"""
