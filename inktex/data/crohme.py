"""
CROHME InkML Loader

Competition on Recognition of Online Handwritten Mathematical Expressions.
Parses InkML traces into strokes so they can be run through the same
preprocessing as live pen input, together with their ground-truth LaTeX.
"""

from typing import Optional, List, Union
from dataclasses import dataclass
from pathlib import Path
import logging
from xml.etree import ElementTree as ET

from torch.utils.data import Dataset

from inktex.data.strokes import Stroke, StrokePoint

logger = logging.getLogger(__name__)


INKML_NS = {'ink': 'http://www.w3.org/2003/InkML'}
TRACE_LINE_WIDTH = 3.0


@dataclass
class CROHMESample:
    """One InkML expression."""
    id: str
    ground_truth: str
    strokes: List[Stroke]


def _parse_trace(trace_text: Optional[str]) -> List[StrokePoint]:
    """Parse trace text ("x y[ t], x y[ t], ...") to points."""
    if not trace_text:
        return []

    points = []
    for point_str in trace_text.strip().split(','):
        coords = point_str.strip().split()
        if len(coords) >= 2:
            try:
                points.append(StrokePoint(float(coords[0]), float(coords[1])))
            except ValueError:
                continue
    return points


def _clean_latex(latex: str) -> str:
    """Strip $ delimiters and surrounding whitespace."""
    latex = latex.strip()
    if latex.startswith('$'):
        latex = latex[1:].lstrip()
    if latex.endswith('$'):
        latex = latex[:-1].rstrip()
    return latex.strip()


def _find_all(root: ET.Element, tag: str) -> List[ET.Element]:
    found = root.findall(f'.//ink:{tag}', INKML_NS)
    if not found:
        # Without namespace fallback
        found = root.findall(f'.//{tag}')
    return found


def parse_inkml(path: Union[str, Path]) -> Optional[CROHMESample]:
    """Parse a CROHME InkML file.

    Ground truth is the first ``truth`` annotation that starts with ``$``.

    Returns:
        CROHMESample, or None when the file has no ground truth or no traces
    """
    path = Path(path)
    root = ET.parse(path).getroot()

    ground_truth = ""
    for annotation in _find_all(root, 'annotation'):
        if annotation.get('type', '') != 'truth':
            continue
        text = annotation.text or ""
        if text.strip().startswith('$'):
            ground_truth = _clean_latex(text)
            break

    if not ground_truth:
        return None

    strokes = []
    for trace in _find_all(root, 'trace'):
        points = _parse_trace(trace.text)
        if points:
            strokes.append(Stroke(points=points, line_width=TRACE_LINE_WIDTH))

    if not strokes:
        return None

    return CROHMESample(id=path.stem, ground_truth=ground_truth, strokes=strokes)


def load_crohme_samples(inkml_dir: Union[str, Path]) -> List[CROHMESample]:
    """Load every parseable InkML file in a directory (non-recursive, sorted by name)."""
    inkml_dir = Path(inkml_dir)
    if not inkml_dir.exists():
        logger.warning(f"CROHME directory not found: {inkml_dir}")
        return []

    samples = []
    skipped = 0
    for inkml_path in sorted(inkml_dir.glob("*.inkml")):
        try:
            sample = parse_inkml(inkml_path)
        except ET.ParseError as e:
            logger.debug(f"Failed to parse {inkml_path}: {e}")
            sample = None

        if sample is None:
            skipped += 1
        else:
            samples.append(sample)

    logger.info(f"Loaded {len(samples)} CROHME samples, skipped {skipped}")
    return samples


class CROHMEDataset(Dataset):
    """CROHME expressions as a map-style dataset of CROHMESample.

    Directory structure expected:
        crohme/
            CROHME_2019/
                test/
                    *.inkml
            or
            test/
                *.inkml
    """

    def __init__(self, data_dir: Union[str, Path], split: str = "test", version: str = "2019"):
        """
        Args:
            data_dir: Directory containing crohme/
            split: Data split ("train", "val", "test")
            version: CROHME version year
        """
        self.split = split
        self.version = version

        base = Path(data_dir) / "crohme"
        possible_dirs = [
            base / f"CROHME_{version}" / split,
            base / f"CROHME{version}" / split,
            base / split,
        ]

        self.samples: List[CROHMESample] = []
        for inkml_dir in possible_dirs:
            if inkml_dir.exists():
                self.samples = load_crohme_samples(inkml_dir)
                break
        else:
            logger.warning(f"No CROHME {version} {split} directory under {base}")

    def __len__(self) -> int:
        return len(self.samples)

    def __getitem__(self, idx: int) -> CROHMESample:
        return self.samples[idx]
