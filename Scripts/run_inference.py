import argparse
import logging
from dataclasses import replace
from pathlib import Path

import cv2

from npu_kit import (
    Classifications,
    Detections,
    ModelConfig,
    draw_classifications,
    draw_detections,
    load_model,
    load_model_config,
)


def build_config(args: argparse.Namespace) -> ModelConfig:
    if args.config:
        cfg = load_model_config(Path(args.config))
    elif args.model:
        cfg = ModelConfig(model_path=args.model)
    else:
        raise ValueError("Pass --config or --model.")

    overrides = {}
    if args.model and args.config:
        overrides["model_path"] = args.model
    if args.task is not None:
        overrides["task"] = args.task
    if args.backend is not None:
        overrides["backend"] = args.backend
    if args.classes is not None:
        overrides["class_file"] = args.classes
    if args.conf is not None:
        overrides["conf_threshold"] = args.conf
    if args.nms is not None:
        overrides["nms_threshold"] = args.nms
    if args.top_k is not None:
        overrides["top_k"] = args.top_k
    if args.imgsz is not None:
        overrides["imgsz"] = (args.imgsz, args.imgsz)
    return replace(cfg, **overrides) if overrides else cfg


def main() -> int:
    parser = argparse.ArgumentParser(description="Run a classification or detection model on one image.")
    parser.add_argument("--image", required=True, help="Path to an input image.")
    parser.add_argument("--config", default=None, help="Model config JSON.")
    parser.add_argument("--model", default=None, help="Path to a model (.onnx/.pt); overrides the config.")
    parser.add_argument("--task", choices=("detection", "classification"), default=None, help="Model task.")
    parser.add_argument("--backend", default=None, help="Force backend: onnxruntime / torchscript.")
    parser.add_argument("--classes", default=None, help="Class names file (one per line, or metadata.yaml).")
    parser.add_argument("--imgsz", type=int, default=None, help="Square model input size if the model has dynamic dims.")
    parser.add_argument("--conf", type=float, default=None, help="Confidence threshold.")
    parser.add_argument("--nms", type=float, default=None, help="IoU threshold for NMS.")
    parser.add_argument("--top-k", type=int, default=None, help="Number of classes to report.")
    parser.add_argument("--show", action="store_true", help="Show a window with the visualized result.")
    parser.add_argument("--out", default=None, help="Optional output path to save the visualization.")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ...).")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    model = load_model(build_config(args))

    img = cv2.imread(args.image)
    if img is None:
        raise FileNotFoundError(f"Could not read image at path: {args.image}")

    result = model(img)
    if isinstance(result, Detections):
        for det in result.items:
            print(det.class_name, f"{det.confidence:.3f}", (det.x, det.y, det.w, det.h))
        vis = draw_detections(img, result.items, show_score=True)
    elif isinstance(result, Classifications):
        for cls in result.items:
            print(cls.class_id, cls.class_name, f"{cls.confidence:.4f}")
        vis = draw_classifications(img, result.items)
    else:
        raise TypeError(f"Unexpected result type: {type(result).__name__}")

    if args.out:
        ok = cv2.imwrite(args.out, vis)
        if not ok:
            raise RuntimeError(f"Failed to write output image: {args.out}")

    if args.show:
        cv2.imshow("result", vis)
        cv2.waitKey(0)
        cv2.destroyAllWindows()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
