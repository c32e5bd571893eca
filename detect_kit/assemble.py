from typing import Iterable, List

from .types import LetterboxTransform, ObjectDetection, RawDetection


def assemble(
    raw_detections: Iterable[RawDetection],
    transform: LetterboxTransform,
    *,
    normalized: bool = False,
    clip: bool = False,
) -> List[ObjectDetection]:
    """
    Map network-space detections back to the source image.

    The box corners go through the inverse letterbox mapping and the centre and half
    extents are re-derived from them. Order is preserved.

    Args:
        transform: the transform computed for *this* image; never one from a previous frame
        normalized: divide x terms by the source width and y terms by the source height
        clip: clamp corners to [0, source_width] x [0, source_height] first
    """

    src_w = float(transform.source_width)
    src_h = float(transform.source_height)
    out: List[ObjectDetection] = []

    for det in raw_detections:
        l, t, r, b = det.as_ltrb()
        l, t = transform.inverse(l, t)
        r, b = transform.inverse(r, b)

        if clip:
            l, r = min(max(l, 0.0), src_w), min(max(r, 0.0), src_w)
            t, b = min(max(t, 0.0), src_h), min(max(b, 0.0), src_h)

        center_x = (l + r) / 2.0
        center_y = (t + b) / 2.0
        width_half = abs(r - l) / 2.0
        height_half = abs(b - t) / 2.0

        if normalized:
            center_x, width_half = center_x / src_w, width_half / src_w
            center_y, height_half = center_y / src_h, height_half / src_h

        out.append(
            ObjectDetection(
                id=int(det.class_id),
                center_x=center_x,
                center_y=center_y,
                width_half=width_half,
                height_half=height_half,
            )
        )

    return out
