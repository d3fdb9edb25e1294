"""Skeleton overlay and snapshot composition on Pillow images."""
