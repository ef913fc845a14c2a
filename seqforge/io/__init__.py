"""Artifact containers."""

from seqforge.io.hdf5 import read_artifact, write_artifact

__all__ = ["read_artifact", "write_artifact"]
