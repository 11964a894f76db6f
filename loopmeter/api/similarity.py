"""Sequence alignment and clustering endpoints."""

import logging

from fastapi import APIRouter, HTTPException

from loopmeter.api.schemas import AlignRequest, AlignResponse, ClusterRequest, ClusterResponse
from loopmeter.analysis.dtw import AlignOptions, align, cluster_by_distance, fast_align
from loopmeter.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/align", response_model=AlignResponse)
def align_sequences(request: AlignRequest):
    """Align two feature sequences with DTW or FastDTW."""
    try:
        if request.fast:
            result = fast_align(
                request.x, request.y,
                radius=request.radius or settings.fastdtw_radius,
                metric=request.metric,
            )
        else:
            options = AlignOptions(
                metric=request.metric,
                global_constraint=request.global_constraint,
                band_rad=settings.dtw_band_rad if request.band_rad is None else request.band_rad,
            )
            result = align(request.x, request.y, options)
    except ValueError as e:
        raise HTTPException(400, str(e))
    except Exception:
        logger.exception("Alignment failed")
        raise HTTPException(500, "Alignment failed")
    return AlignResponse(**result.to_dict(include_cost_matrix=request.include_cost_matrix))


@router.post("/cluster", response_model=ClusterResponse)
def cluster_sequences(request: ClusterRequest):
    """Group feature sequences around DTW medoids."""
    try:
        clusters = cluster_by_distance(
            request.sequences,
            k=request.k or min(settings.cluster_k, len(request.sequences)),
            max_iterations=request.max_iterations or settings.cluster_max_iterations,
            metric=request.metric or settings.dtw_metric,
            seed=request.seed,
            stop_when_stable=request.stop_when_stable,
        )
    except ValueError as e:
        raise HTTPException(400, str(e))
    except Exception:
        logger.exception("Clustering failed")
        raise HTTPException(500, "Clustering failed")
    return ClusterResponse(**clusters.to_dict())
