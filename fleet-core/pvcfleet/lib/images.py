#!/usr/bin/env python3

# images.py - PVC Fleet image metadata libraries
# Part of the Parallel Virtual Cluster (PVC) system
#
#    Copyright (C) 2018-2021 Joshua M. Boniface <joshua@boniface.me>
#
#    This program is free software: you can redistribute it and/or modify
#    it under the terms of the GNU General Public License as published by
#    the Free Software Foundation, version 3.
#
#    This program is distributed in the hope that it will be useful,
#    but WITHOUT ANY WARRANTY; without even the implied warranty of
#    MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
#    GNU General Public License for more details.
#
#    You should have received a copy of the GNU General Public License
#    along with this program.  If not, see <https://www.gnu.org/licenses/>.
#
###############################################################################

# Image metadata records are YAML documents stored under "images/", e.g.:
#
#   images:
#   - series: jammy
#     arch: amd64

import yaml

from celery.utils.log import get_task_logger

from pvcfleet.lib.errors import ImageMetadataError


logger = get_task_logger(__name__)


IMAGES_PREFIX = "images/"


def write_image_metadata(storage, name, images):
    """
    Store one image metadata record of (series, arch) entries
    """
    data = yaml.safe_dump(
        {
            "images": [
                {"series": series, "arch": arch} for series, arch in images
            ]
        },
        default_flow_style=False,
    )
    storage.put(f"{IMAGES_PREFIX}{name}", data.encode("utf-8"))
    logger.info(f"Stored image metadata {IMAGES_PREFIX}{name}")


def read_image_metadata(storage):
    """
    Return every image entry held under the images prefix
    """
    entries = list()
    for name in storage.list(IMAGES_PREFIX):
        try:
            o_images = yaml.load(storage.get(name), Loader=yaml.SafeLoader)
        except yaml.YAMLError as e:
            raise ImageMetadataError(f"image metadata {name} is unreadable: {e}")

        if not isinstance(o_images, dict) or not isinstance(
            o_images.get("images"), list
        ):
            raise ImageMetadataError(f"image metadata {name} has no images list")

        for entry in o_images["images"]:
            if not isinstance(entry, dict) or not entry.get("arch"):
                raise ImageMetadataError(
                    f"image metadata {name} has an entry without arch: {entry!r}"
                )
            entries.append(entry)

    return entries


def supported_architectures(storage):
    """
    List the architectures that images exist for
    """
    entries = read_image_metadata(storage)
    if not entries:
        raise ImageMetadataError()

    arches = sorted(set(str(entry["arch"]) for entry in entries))
    logger.debug(f"Supported architectures: {arches}")
    return arches
