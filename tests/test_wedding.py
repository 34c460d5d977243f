from datetime import datetime

import pytest

from groupbot.marriage import Registry, Status
from groupbot.wedding import (
    CONFESS_FAILURE,
    CONFESS_SUCCESS,
    DIVORCE_SUCCESS,
    Member,
    Wedding,
    avatar_url,
)

NOW = datetime(2023, 1, 1, 12, 0, 0)


class ScriptedRandom:
    def __init__(self, *values):
        self.values = list(values)

    def randrange(self, n):
        v = self.values.pop(0) if self.values else 0
        return min(v, n - 1)


def names(uid):
    return f"user{uid}"


@pytest.fixture
def registry(tmp_path):
    reg = Registry(tmp_path / "wed.db", today=lambda: NOW)
    yield reg
    reg.close()


def make(registry, *values):
    return Wedding(registry, names, ScriptedRandom(*values))


def test_set_cd(registry):
    w = make(registry)
    assert w.set_cd(1, "24").text == "设置成功"
    assert registry.get_cd_time(1) == 24.0
    assert w.set_cd(1, "abc").text.startswith("[qqwife]请设置纯数字")


def test_toggle_forbids_free_love(registry):
    w = make(registry)
    assert w.toggle(1, "禁止", "自由恋爱").text == "设置成功"
    assert registry.modes(1) == (False, True)
    assert w.propose(1, 10, "娶", 20).text == "你群包分配,别在娶妻上面下功夫，好好水群"


def test_toggle_bad_mode(registry):
    w = make(registry)
    assert w.toggle(1, "允许", "other").text.startswith("[qqwife]群状态查询失败")


def test_marry_random_then_repeat(registry):
    w = make(registry, 1, 0)
    members = [Member(3, 3), Member(1, 1), Member(2, 2)]
    reply = w.marry_random(1, 1, members)
    assert reply.at == (1,)
    assert reply.image == avatar_url(2)
    assert "user2" in reply.text
    info, status = registry.lookup(1, 1)
    assert status is Status.TOP and info.target == 2
    again = w.marry_random(1, 1, members)
    assert "娶了群友" in again.text
    assert again.image == avatar_url(2)


def test_marry_random_only_self(registry):
    w = make(registry)
    reply = w.marry_random(1, 1, [Member(1, 5)])
    assert reply.text == "~群里没有ta人是单身了哦 明天再试试叭"


def test_marry_random_picks_self(registry):
    w = make(registry, 0)
    reply = w.marry_random(1, 1, [Member(1, 1), Member(2, 2)])
    assert reply.text == "呜...没娶到，你可以再尝试一次"
    assert registry.lookup(1, 1)[1] is Status.SINGLE


def test_propose_success_marry(registry):
    w = make(registry, 0, 0)
    reply = w.propose(1, 10, "娶", 20)
    assert reply.text.startswith(CONFESS_SUCCESS[0])
    assert "今天你的群老婆是" in reply.text
    info, status = registry.lookup(1, 10)
    assert status is Status.TOP and info.target == 20


def test_propose_success_be_married(registry):
    w = make(registry, 0, 0)
    reply = w.propose(1, 10, "嫁", 20)
    assert "今天你的群老公是" in reply.text
    info, status = registry.lookup(1, 10)
    assert status is Status.BOTTOM and info.user == 20


def test_propose_failure_and_cooldown(registry):
    w = make(registry, 100, 0)
    assert w.propose(1, 10, "娶", 20).text in CONFESS_FAILURE
    assert registry.lookup(1, 10)[1] is Status.SINGLE
    assert w.propose(1, 10, "娶", 20).text == "你的技能还在CD中..."


def test_propose_self_noble_single(registry):
    w = make(registry, 1)
    assert w.propose(1, 10, "娶", 10).text == "今日获得成就：单身贵族"
    info, status = registry.lookup(1, 10)
    assert status is Status.TOP and info.target == 0


def test_steal_wife(registry):
    registry.open_day(1)
    registry.register(1, 2, 3, "user2", "user3")
    w = make(registry, 0, 0)
    reply = w.steal(1, 1, 3)
    assert reply.at == (1,)
    assert "今天你的群老婆是" in reply.text
    info, status = registry.lookup(1, 1)
    assert status is Status.TOP and info.target == 3
    assert registry.lookup(1, 2)[1] is Status.SINGLE
    assert registry.get_favorability(1, 2) == 5


def test_steal_single_refused(registry):
    registry.open_day(1)
    w = make(registry)
    assert w.steal(1, 1, 3).text == "ta现在还是单身哦，快向ta表白吧！"


def test_matchmake_success(registry):
    w = make(registry, 0)
    reply = w.matchmake(1, 9, 4, 5)
    assert reply.at == (9, 4)
    assert reply.image == avatar_url(5)
    info, status = registry.lookup(1, 4)
    assert status is Status.TOP and info.target == 5
    assert registry.get_favorability(9, 4) == 1


def test_matchmake_self_refused(registry):
    w = make(registry)
    assert w.matchmake(1, 4, 4, 5).text == "禁止自己给自己做媒!"


def test_gift_spends_and_cools_down(registry):
    w = make(registry, 9, 3, 1)
    wallet = {1: 50}
    reply = w.gift(1, 1, 2, wallet)
    assert "ta很喜欢" in reply.text
    assert 0 <= wallet[1] < 50
    assert str(registry.get_favorability(1, 2)) in reply.text
    assert w.gift(1, 1, 2, wallet).text == "舔狗，今天你已经送过礼物了。"


def test_gift_empty_wallet(registry):
    w = make(registry)
    wallet = {}
    assert w.gift(1, 1, 2, wallet).text == "你钱包没钱啦！"
    assert wallet == {}


def test_divorce(registry):
    registry.open_day(1)
    registry.register(1, 1, 2, "user1", "user2")
    w = make(registry, 0)
    assert w.divorce(1, 1).text == DIVORCE_SUCCESS[1]
    assert registry.lookup(1, 1)[1] is Status.SINGLE


def test_divorce_single(registry):
    w = make(registry)
    assert w.divorce(1, 1).text == "今天你还没结婚哦"


def test_roster(registry):
    w = make(registry)
    assert w.roster(1).text == "今天还没有人结婚哦"
    registry.register(1, 1, 2, "user1", "user2")
    text = w.roster(1).text
    assert "user1(1)" in text and "user2(2)" in text


def test_reset(registry):
    w = make(registry)
    assert w.reset(0, "").text == "该功能只能在群组使用或者指定群组"
    registry.open_day(1)
    registry.register(1, 1, 2, "user1", "user2")
    assert w.reset(1, "本群").text == "重置成功"
    assert registry.lookup(1, 1)[1] is Status.SINGLE
    assert w.reset(1, "77").text.startswith("[qqwife]数据库发生问题力")