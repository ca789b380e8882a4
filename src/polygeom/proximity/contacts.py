"""
Contact assembly and clustering.

Raw contact candidates from the pair algorithms are moved onto the padded
surfaces and given depths; when a caller caps the contact count the patch
is reduced by agglomerative clustering over position and normal.
"""

import numpy as np
from scipy.cluster.hierarchy import fcluster, linkage

from polygeom.core.logging import get_logger
from polygeom.geometry.types import unit_rows
from polygeom.proximity.results import ContactQueryResult, RawContacts

_logger = get_logger(__name__)


def assemble_contacts(
    raw: RawContacts,
    margin_a: float,
    margin_b: float,
    padding_a: float,
    padding_b: float,
) -> ContactQueryResult:
    """
    Turn raw candidates into a contact patch between the padded geometries.

    Candidates farther apart than the total padding are dropped. Contact
    points are pushed along the A->B normal onto each padded surface and
    ``depth = (margins + paddings) - raw separation``.
    """
    threshold = margin_a + margin_b + padding_a + padding_b
    keep = np.flatnonzero(raw.distances <= threshold)
    if len(keep) == 0:
        return ContactQueryResult()
    distances = raw.distances[keep]
    points_a, points_b = raw.points_a[keep], raw.points_b[keep]
    if raw.normals is not None:
        normals = unit_rows(raw.normals[keep])
    else:
        sign = np.where(distances < 0, -1.0, 1.0)
        normals = unit_rows(points_b - points_a) * sign[:, None]
    return ContactQueryResult(
        depths=np.maximum(threshold - distances, 0.0),
        points1=points_a + normals * (margin_a + padding_a),
        points2=points_b - normals * (margin_b + padding_b),
        normals=normals,
        elems1=raw.elems_a[keep].astype(np.int64),
        elems2=raw.elems_b[keep].astype(np.int64),
    )


def stable_order(result: ContactQueryResult) -> np.ndarray:
    """Deepest first, ties broken by position, independent of input order."""
    points = result.points1
    return np.lexsort((points[:, 2], points[:, 1], points[:, 0], -result.depths))


def cluster_contacts(result: ContactQueryResult, max_contacts: int, normal_weight: float) -> ContactQueryResult:
    """
    Reduce a contact patch to at most ``max_contacts`` representatives.

    Contacts are grouped by average-linkage clustering on their positions and
    their normals (scaled by ``normal_weight`` times the patch extent). The
    deepest member of each cluster represents it, keeping its depth, normal
    and element indices.

    Args:
        result: contact patch to reduce
        max_contacts: cap on the number of contacts; <= 0 disables clustering
        normal_weight: relative weight of normal similarity

    Returns:
        The reduced patch, ordered deepest first
    """
    ordered = result.subset(stable_order(result))
    if max_contacts <= 0 or len(ordered) <= max_contacts:
        return ordered
    if max_contacts == 1:
        return ordered.subset(np.array([0]))

    points = ordered.points1
    extent = float(np.linalg.norm(points.max(axis=0) - points.min(axis=0)))
    scale = extent if extent > 0.0 else 1.0
    features = np.hstack([points, ordered.normals * (normal_weight * scale)])
    labels = fcluster(linkage(features, method="average"), t=max_contacts, criterion="maxclust")

    # first occurrence of each label in stable order is its deepest member
    _, first = np.unique(labels, return_index=True)
    representatives = np.sort(first)
    _logger.debug(
        "contacts_clustered",
        raw=len(ordered),
        clusters=len(representatives),
        max_contacts=max_contacts,
    )
    return ordered.subset(representatives)
