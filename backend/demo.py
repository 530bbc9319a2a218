"""Create a demo scenario for development/testing."""

import json
import shutil

from backend import storage

DEMO_SCENARIO_ID = "op-briefing"

DEMO_SCENARIO = {
    "id": DEMO_SCENARIO_ID,
    "title": "作戦会議",
    "disclaimer": "これは架空の訓練シナリオです。実在の人物・組織・作戦とは関係ありません。",
    "behavior": [
        "あなたは会議の参加者として発言してください。",
        "発言は簡潔に、一度に一つの論点だけを述べてください。",
        "自分の担当外の判断は、担当者に発言を促してください。",
    ],
    "situation": "郊外の市街地上空でドローンが不審な車列を捕捉した。",
    "members": [
        {
            "id": "commander",
            "name": "作戦司令官",
            "role": "指揮",
            "persona": "冷静で的確。全体の指揮を取る。",
            "avatar": "/avatars/commander.png",
        },
        {
            "id": "safety",
            "name": "国務省副長官",
            "role": "安全計画",
            "persona": "安全計画全体の責任を負う。将来的、潜在的な危険の排除を第一目的とする。",
            "avatar": "/avatars/safety-vp.png",
            "supervisorId": "commander",
        },
        {
            "id": "drone",
            "name": "ドローン操縦者",
            "role": "偵察",
            "persona": "無線で状況報告を行う。簡潔に事実を述べる。",
            "avatar": "/avatars/drone-op.png",
            "supervisorId": "commander",
        },
        {
            "id": "local",
            "name": "現地オペレーター",
            "role": "現地",
            "persona": "現場の状況を詳しく語る。",
            "avatar": "/avatars/local-op.png",
            "supervisorId": "commander",
        },
        {
            "id": "foreign",
            "name": "外務省職員",
            "role": "外交",
            "persona": (
                "作戦地域が外国であるため、当地外交官、友好国、潜在的な対立国の利害を考慮する立場にある。"
                "返答は、それぞれの外交官に確認しなければならないため遅れがちである。"
            ),
            "avatar": "/avatars/foreign-officer.png",
        },
        {
            "id": "evac",
            "name": "被害計測官",
            "role": "被害予測",
            "persona": "被害を予測し、報告する業務についている。作戦の実施可否に関する話題には参加しない。",
            "avatar": "/avatars/evacuation-tech.png",
        },
    ],
}


def create_demo_data() -> None:
    """Replace the demo scenario directory with a fresh copy."""
    target = storage.scenarios_dir() / DEMO_SCENARIO_ID
    if target.exists():
        shutil.rmtree(target)
    target.mkdir(parents=True)
    (target / "scenario.json").write_text(
        json.dumps(DEMO_SCENARIO, ensure_ascii=False, indent=2), encoding="utf-8"
    )
