"""Turn estimated keypoints into what is drawn over the video."""

from typing import Dict, List, Sequence, Tuple

from imusync.core import models

SKELETON_CONNECTIONS: Tuple[Tuple[str, str], ...] = (
    ("nose", "left_eye"),
    ("nose", "right_eye"),
    ("left_eye", "left_ear"),
    ("right_eye", "right_ear"),
    ("nose", "left_shoulder"),
    ("nose", "right_shoulder"),
    ("left_shoulder", "right_shoulder"),
    ("left_shoulder", "left_elbow"),
    ("left_elbow", "left_wrist"),
    ("right_shoulder", "right_elbow"),
    ("right_elbow", "right_wrist"),
    ("left_shoulder", "left_hip"),
    ("right_shoulder", "right_hip"),
    ("left_hip", "right_hip"),
    ("left_hip", "left_knee"),
    ("left_knee", "left_ankle"),
    ("right_hip", "right_knee"),
    ("right_knee", "right_ankle"),
)


def skeleton_lines(
    keypoints: Sequence[models.Keypoint], min_confidence: float = 0.2
) -> List[Tuple[models.Keypoint, models.Keypoint]]:
    """Connections whose two endpoints were both found with enough confidence.

    Args:
        keypoints: The estimated keypoints. Unnamed keypoints are ignored; when a
            name repeats, the last keypoint with that name is used.
        min_confidence: Minimum score of both endpoints.

    Returns:
        Pairs of keypoints in the order of SKELETON_CONNECTIONS.
    """
    by_name: Dict[str, models.Keypoint] = {kp.name: kp for kp in keypoints if kp.name}

    lines = []
    for first, second in SKELETON_CONNECTIONS:
        kp1 = by_name.get(first)
        kp2 = by_name.get(second)
        if kp1 is None or kp2 is None:
            continue
        if kp1.score < min_confidence or kp2.score < min_confidence:
            continue
        lines.append((kp1, kp2))
    return lines


def average_score(keypoints: Sequence[models.Keypoint]) -> float:
    """Mean keypoint score, 0 when there are no keypoints."""
    if not keypoints:
        return 0.0
    return sum(kp.score for kp in keypoints) / len(keypoints)


def build_pose_frame(
    keypoints: Sequence[models.Keypoint],
    min_part_confidence: float = 0.2,
    min_draw_confidence: float = 0.02,
) -> models.PoseFrame:
    """Collect the drawable parts of one pose estimate.

    Args:
        keypoints: The estimated keypoints.
        min_part_confidence: Minimum endpoint score for a skeleton line.
        min_draw_confidence: Keypoints scoring below this are not drawn.

    Returns:
        The pose frame. The score is averaged over all keypoints, drawn or not.
    """
    return models.PoseFrame(
        keypoints=[kp for kp in keypoints if kp.score >= min_draw_confidence],
        lines=skeleton_lines(keypoints, min_confidence=min_part_confidence),
        score=average_score(keypoints),
    )
