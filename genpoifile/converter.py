#!/usr/bin/env python3
"""Turn BOQ cells into a KML overlay with one folder for gyms and one for stops."""
import logging
import xml.etree.ElementTree as ET
from typing import BinaryIO, Dict, List

from geodex.errors import DataIntegrityError
from geodex.models import Cell, POIEntry

logger = logging.getLogger(__name__)

KML_NS = "http://www.opengis.net/kml/2.2"
PADDLE_HREF = "http://maps.google.com/mapfiles/kml/paddle/{}.png"
GYM_ICON = PADDLE_HREF.format("wht-stars")
STOP_ICON = PADDLE_HREF.format("ltblu-circle")
ICON_SCALE = "0.5"


def _sub(parent: ET.Element, tag: str, text: str = None) -> ET.Element:
    el = ET.SubElement(parent, tag)
    if text is not None:
        el.text = text
    return el


def check_location(poi: POIEntry) -> None:
    """Raise DataIntegrityError unless the POI has exactly a lon/lat pair."""
    if not poi.location.is_point:
        raise DataIntegrityError(f"invalid coordinates: {list(poi.location.coordinates)}")


class BOQConverter:
    """Collects gyms and stops from cells and writes them as KML."""

    def __init__(self, map_name: str):
        self.map_name = map_name

        self.cell_count = 0
        self.poi_count = 0
        self.gym_count = 0
        self.stop_count = 0
        self.skipped = 0

        self.gym_folders: List[ET.Element] = []
        self.stop_folders: List[ET.Element] = []

    def process_cell(self, cell: Cell) -> None:
        self.cell_count += 1

        for poi in cell:
            self.poi_count += 1
            if poi.is_gym:
                self.gym_count += 1
                icon_href = GYM_ICON
            elif poi.is_stop:
                self.stop_count += 1
                icon_href = STOP_ICON
            else:
                continue

            try:
                check_location(poi)
            except DataIntegrityError as e:
                self.skipped += 1
                logger.error("%s (cell %d of %s)", e, cell.index, cell.source)
                continue

            if poi.name:
                name = poi.name
            elif poi.is_gym:
                name = f"Gym {self.gym_count}"
            else:
                name = f"Stop {self.stop_count}"

            folder = self._fort_folder(name, poi, icon_href)
            if poi.is_gym:
                self.gym_folders.append(folder)
            else:
                self.stop_folders.append(folder)

    @staticmethod
    def _fort_folder(name: str, poi: POIEntry, icon_href: str) -> ET.Element:
        folder = ET.Element("Folder")
        _sub(folder, "name", name)
        placemark = _sub(folder, "Placemark")
        point = _sub(placemark, "Point")
        _sub(point, "coordinates", f"{poi.location.lon},{poi.location.lat}")
        icon_style = _sub(_sub(placemark, "Style"), "IconStyle")
        _sub(_sub(icon_style, "Icon"), "href", icon_href)
        _sub(icon_style, "scale", ICON_SCALE)
        return folder

    def build_kml(self) -> ET.Element:
        root = ET.Element("kml", xmlns=KML_NS)
        document = _sub(root, "Document")
        _sub(document, "name", self.map_name)
        _sub(document, "open", "1")
        for title, folders in (("Gyms", self.gym_folders), ("Stops", self.stop_folders)):
            wrap = _sub(document, "Folder")
            _sub(wrap, "name", title)
            _sub(wrap, "open", "0")
            wrap.extend(folders)
        ET.indent(root, space="  ")
        return root

    def to_bytes(self) -> bytes:
        return ET.tostring(self.build_kml(), encoding="utf-8", xml_declaration=True)

    def generate_kml(self, output: BinaryIO) -> None:
        """Write the KML document to a binary stream."""
        ET.ElementTree(self.build_kml()).write(output, encoding="utf-8", xml_declaration=True)
        output.write(b"\n")

    def summary(self) -> Dict[str, int]:
        return {
            "cells": self.cell_count,
            "pois": self.poi_count,
            "gyms": self.gym_count,
            "stops": self.stop_count,
            "skipped": self.skipped,
        }
