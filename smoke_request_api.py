#!/usr/bin/env python3
"""
手动冒烟脚本：对本地运行的服务提交一个请求并查看结果

使用方法:
1. 初始化数据: python manage.py migrate --run-syncdb && python manage.py seed_catalog
2. 启动服务:   python manage.py runserver
3. 运行脚本:   python smoke_request_api.py <category_id> [field=value ...]

seed_catalog 会打印每种实体的 id，用 field=value 把它们填进 payload，例如:
    python smoke_request_api.py 3 ray_id=12 area_id=2
"""

import sys
from datetime import datetime, timedelta, timezone

import requests

BASE_URL = "http://localhost:8000/api"
HEADERS = {"X-User-Id": "1"}

# 各 category 的最小 payload；实体 id 通过命令行覆盖
SAMPLE_PAYLOADS = {
    1: {
        "service_id": 1,
        "first_name": "Jane",
        "last_name": "Doe",
        "use_saved_address": True,
        "nurse_gender": "female",
    },
    2: {"test_package_id": 1, "request_with_insurance": False},
    3: {"ray_id": 1},
    4: {"machine_id": 1},
    5: {"physiotherapist_id": 1, "sessions_per_month": 4},
    6: {"first_name": "Jane"},
    7: {"nurse_visit_id": 1, "visits_per_day": 2},
    8: {"doctor_id": 1, "slot_id": 1, "appointment_type": "video_call"},
}


def banner(title):
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)


def sample_payload(category_id, overrides):
    payload = dict(SAMPLE_PAYLOADS[category_id])
    payload.update(overrides)
    now = datetime.now(timezone.utc)
    if category_id == 1:
        payload["scheduled_time"] = (now + timedelta(hours=2)).isoformat()
    if category_id == 7:
        payload["from_date"] = now.date().isoformat()
        payload["to_date"] = (now.date() + timedelta(days=7)).isoformat()
    return payload


def show_rules(category_id):
    banner(f"Category {category_id} 校验规则")
    response = requests.get(f"{BASE_URL}/categories/{category_id}/rules/")
    data = response.json()
    if response.status_code != 200:
        print(f"❌ {data['code']}: {data['message']}")
        return

    print(f"名称: {data['name']}{' (stub)' if data['is_stub'] else ''}")
    for field, constraints in data["fields"].items():
        print(f"  - {field}: {'|'.join(constraints)}")
    for group in data["groups"]:
        print(f"  * {group}")


def submit(category_id, overrides):
    banner(f"提交 category {category_id} 请求")
    response = requests.post(
        f"{BASE_URL}/categories/{category_id}/requests/",
        json=sample_payload(category_id, overrides),
        headers=HEADERS,
    )
    data = response.json()
    print(f"响应状态码: {response.status_code}")

    if response.status_code == 201:
        print(f"✅ 已创建: {data['request_id']} (total_price={data['total_price']})")
        return data["request_id"]

    print(f"❌ {data.get('code')}: {data.get('message')}")
    for field, messages in data.get("detail", {}).get("errors", {}).items():
        print(f"  - {field}: {'; '.join(messages)}")
    return None


def show_detail(request_id):
    banner("请求详情")
    response = requests.get(f"{BASE_URL}/requests/{request_id}/", headers=HEADERS)
    data = response.json()

    print(f"状态: {data['status']}")
    print(f"姓名: {data['full_name']}")
    print("专属字段:")
    for field, value in data["details"].items():
        print(f"  - {field}: {value}")
    print(f"价格: {data['pricing']['final_price']}")


def main():
    category_id = int(sys.argv[1]) if len(sys.argv) > 1 else 1
    overrides = dict(arg.split("=", 1) for arg in sys.argv[2:])

    try:
        show_rules(category_id)
        request_id = submit(category_id, overrides)
        if request_id:
            show_detail(request_id)
    except requests.exceptions.ConnectionError:
        print("\n❌ 连接错误: 无法连接到服务器")
        print("请确保Django服务器正在运行: python manage.py runserver")
        sys.exit(1)


if __name__ == "__main__":
    main()
