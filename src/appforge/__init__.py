"""Appforge - turn ambiguous new-app input into build and deploy objects.

This package classifies user input (source locations, images, image streams,
groups and environment assignments), resolves it into concrete images,
associates source code with the images that build it and renders the
resulting pipelines into a deployable object list.
"""

__version__ = "0.1.0"
