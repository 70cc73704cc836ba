import json
import os


class ResultSink:
    def write(self, report: dict, export_cfg: dict) -> None:
        export_cfg = export_cfg or {}
        if export_cfg.get("console") is True:
            print(json.dumps(report, indent=2, default=str))

        json_cfg = export_cfg.get("json") or {}
        if json_cfg.get("enabled", True) and json_cfg.get("path"):
            path = json_cfg["path"]
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(report, f, indent=2, default=str)

    def write_round(self, round_index: int, metrics, export_cfg: dict) -> dict:
        report = {
            "round": round_index,
            "metrics": metrics.aggregate(),
            # failed transactions in full, successes only count
            "failures": [r.to_dict() for r in metrics.results if not r.is_committed()],
        }
        self.write(report, export_cfg)
        return report
