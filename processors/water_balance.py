#!/usr/bin/env python3
"""
Water Balance Processor

Integrates monthly precipitation and actual evapotranspiration grids over a
basin into volumes and assembles the monthly water-balance table.

Grid values are depths in mm per month; a cell contributes
``depth_mm / 1000 * cell_area_m2`` cubic metres when the basin touches it
and its value is not NaN. Runoff is PPT minus AET and is allowed
to go negative.
"""

import logging
import re
from dataclasses import dataclass, asdict
from datetime import date
from typing import Iterable, List, Sequence, Tuple

import geopandas as gpd
import numpy as np
import pandas as pd
import pyproj
from affine import Affine
from rasterio.features import geometry_mask

from infrastructure.exceptions import DataUnavailableError, DateParseError, GridAlignmentError
from .coordinate_system_processor import CoordinateSystemProcessor

logger = logging.getLogger(__name__)

LAYER_DATE_PATTERN = re.compile(r"^.*?(\d{4})[-_](\d{2})[-_](\d{2}).*$")
BALANCE_COLUMNS = ['date', 'ppt_vol_m3', 'aet_vol_m3', 'runoff_vol_m3', 'year', 'month']
MM_TO_M = 0.001


@dataclass(frozen=True)
class MonthlyBalanceRecord:
    date: date
    ppt_vol_m3: float
    aet_vol_m3: float
    runoff_vol_m3: float
    year: int
    month: int

    @classmethod
    def from_volumes(cls, when: date, ppt_vol_m3: float, aet_vol_m3: float) -> 'MonthlyBalanceRecord':
        return cls(
            date=when,
            ppt_vol_m3=float(ppt_vol_m3),
            aet_vol_m3=float(aet_vol_m3),
            runoff_vol_m3=float(ppt_vol_m3) - float(aet_vol_m3),
            year=when.year,
            month=when.month,
        )

    def to_dict(self):
        return asdict(self)


def parse_layer_date(label: str) -> date:
    """Date embedded in a layer label such as ``ppt_2020-01-01`` or ``X2020_01_01``"""
    match = LAYER_DATE_PATTERN.match(str(label))
    if match is None:
        raise DateParseError(label)
    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        raise DateParseError(label)


def cell_area_grid(transform: Affine, shape: Tuple[int, int], crs) -> np.ndarray:
    """
    Area of every grid cell in square metres.

    Geographic grids: geodesic area of each latitude band on the WGS84
    ellipsoid, identical across a row. Projected grids: |dx * dy| everywhere.
    """
    rows, cols = shape
    if not CoordinateSystemProcessor.is_geographic(crs):
        cell = abs(transform.a * transform.e - transform.b * transform.d)
        return np.full((rows, cols), cell, dtype='float64')

    geod = pyproj.Geod(ellps='WGS84')
    width = abs(transform.a)
    row_area = np.empty(rows, dtype='float64')
    for row in range(rows):
        top = transform.f + row * transform.e
        bottom = top + transform.e
        area, _ = geod.polygon_area_perimeter(
            [0.0, width, width, 0.0],
            [top, top, bottom, bottom],
        )
        row_area[row] = abs(area)
    return np.repeat(row_area[:, np.newaxis], cols, axis=1)


def basin_mask(basin: gpd.GeoDataFrame, transform: Affine, shape: Tuple[int, int]) -> np.ndarray:
    """True for every cell the basin touches, partial edge cells included"""
    geometries = [geom for geom in basin.geometry if geom is not None and not geom.is_empty]
    if not geometries or shape[0] == 0 or shape[1] == 0:
        return np.zeros(shape, dtype=bool)
    return geometry_mask(geometries, out_shape=shape, transform=transform, invert=True, all_touched=True)


def zonal_volumes(values: np.ndarray, inside: np.ndarray, cell_area: np.ndarray,
                  mm_to_m: float = MM_TO_M) -> np.ndarray:
    """Per-layer sum of depth * area over the included, non-NaN cells (m3)"""
    masked = np.where(inside[np.newaxis, :, :], values, np.nan)
    return np.nansum(masked * mm_to_m * cell_area[np.newaxis, :, :], axis=(1, 2))


def check_alignment(ppt_stack, aet_stack):
    """Both stacks must share months, shape and transform"""
    if ppt_stack.n_layers != aet_stack.n_layers:
        raise GridAlignmentError(ppt_stack.variable, aet_stack.variable,
                                 f"{ppt_stack.n_layers} vs {aet_stack.n_layers} monthly layers")
    if ppt_stack.shape != aet_stack.shape:
        raise GridAlignmentError(ppt_stack.variable, aet_stack.variable,
                                 f"grid shapes {ppt_stack.shape} vs {aet_stack.shape}")
    if not ppt_stack.transform.almost_equals(aet_stack.transform):
        raise GridAlignmentError(ppt_stack.variable, aet_stack.variable, "grid transforms differ")
    if pyproj.CRS.from_user_input(ppt_stack.crs) != pyproj.CRS.from_user_input(aet_stack.crs):
        raise GridAlignmentError(ppt_stack.variable, aet_stack.variable, "grid CRS differ")


def build_balance_table(labels: Sequence[str], ppt_vol: Iterable[float], aet_vol: Iterable[float]) -> pd.DataFrame:
    """Water-balance table in layer order, one row per label"""
    records = [
        MonthlyBalanceRecord.from_volumes(parse_layer_date(label), ppt, aet)
        for label, ppt, aet in zip(labels, ppt_vol, aet_vol)
    ]
    df = pd.DataFrame([record.to_dict() for record in records], columns=BALANCE_COLUMNS)
    df['date'] = pd.to_datetime(df['date'])
    df['year'] = df['year'].astype(int)
    df['month'] = df['month'].astype(int)
    return df


def records_from_frame(df: pd.DataFrame) -> List[MonthlyBalanceRecord]:
    """Typed records back from a water-balance table"""
    return [
        MonthlyBalanceRecord(
            date=pd.Timestamp(row.date).date(),
            ppt_vol_m3=float(row.ppt_vol_m3),
            aet_vol_m3=float(row.aet_vol_m3),
            runoff_vol_m3=float(row.runoff_vol_m3),
            year=int(row.year),
            month=int(row.month),
        )
        for row in df.itertuples(index=False)
    ]


class WaterBalanceProcessor:
    """Monthly basin volumes from aligned PPT and AET stacks"""

    def __init__(self, mm_to_m: float = MM_TO_M):
        self.mm_to_m = mm_to_m
        self.crs_processor = CoordinateSystemProcessor()

    def compute(self, basin: gpd.GeoDataFrame, ppt_stack, aet_stack) -> pd.DataFrame:
        """
        Parameters:
        -----------
        basin : GeoDataFrame
            Basin polygons in any CRS
        ppt_stack, aet_stack : ClimateGridStack
            Aligned monthly grids; the precipitation grid defines the working CRS

        Returns:
        --------
        DataFrame with columns date, ppt_vol_m3, aet_vol_m3, runoff_vol_m3, year, month
        """
        check_alignment(ppt_stack, aet_stack)

        basin_grid = self.crs_processor.align_to_crs(basin, ppt_stack.crs, label="basin")
        inside = basin_mask(basin_grid, ppt_stack.transform, ppt_stack.shape)
        if not inside.any():
            raise DataUnavailableError(
                ppt_stack.variable,
                parse_layer_date(ppt_stack.labels[0]),
                parse_layer_date(ppt_stack.labels[-1]),
                reason="the basin does not overlap any grid cell",
            )

        cell_area = cell_area_grid(ppt_stack.transform, ppt_stack.shape, ppt_stack.crs)
        logger.info(f"Basin covers {int(inside.sum())} cells, {float(cell_area[inside].sum()) / 1e6:.2f} km2")

        ppt_vol = zonal_volumes(ppt_stack.values, inside, cell_area, self.mm_to_m)
        aet_vol = zonal_volumes(aet_stack.values, inside, cell_area, self.mm_to_m)

        table = build_balance_table(ppt_stack.labels, ppt_vol, aet_vol)

        negative = int((table['runoff_vol_m3'] < 0).sum())
        if negative:
            logger.warning(f"{negative} of {len(table)} months have negative runoff (AET exceeds PPT)")

        return table
