"""Chat commands of the daily group marriage game, answering with replies to send."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Callable, Iterable, MutableMapping

from groupbot.marriage import (
    SKILL_DIVORCE,
    SKILL_GIFT,
    SKILL_MATCHMAKING,
    SKILL_MISTRESS,
    SKILL_PROPOSE,
    Registry,
    Status,
    check_divorce,
    check_matchmaking,
    check_mistress,
    check_single,
)

CONFESS_SUCCESS = (
    "是个勇敢的孩子(*/ω＼*) 今天的运气都降临在你的身边~\n\n",
    "(´･ω･`)对方答应了你 并表示愿意当今天的CP\n\n",
)
CONFESS_FAILURE = (
    "今天的运气有一点背哦~明天再试试叭",
    "_(:з」∠)_下次还有机会 咱抱抱你w",
    "今天失败了惹. 摸摸头~咱明天还有机会",
)
STEAL_SUCCESS = ("因为你的个人魅力~~今天他就是你的了w\n\n",)
DIVORCE_FAILURE = (
    "打是情,骂是爱,不打不亲不相爱。答应我不要分手。",
    "床头打架床尾和，夫妻没有隔夜仇。安啦安啦，不要闹变扭。",
)
DIVORCE_SUCCESS = (
    "离婚成功力\n话说你不考虑当个1？",
    "离婚成功力\n天涯何处无芳草，何必单恋一枝花？不如再摘一支（bushi",
)

NOBODY_MARRIED = "今天还没有人结婚哦"
GROUP_ONLY = "该功能只能在群组使用或者指定群组"
_DB_ERROR = "[qqwife]数据库发生问题力\n"
_CANDIDATES = 30


def avatar_url(uid: int) -> str:
    return f"http://q4.qlogo.cn/g?b=qq&nk={uid}&s=640"


@dataclass(frozen=True)
class Member:
    """A group member as listed by the chat server."""

    user_id: int
    last_sent_time: int = 0


@dataclass(frozen=True)
class Reply:
    """A message to send: text, members to mention and an optional image."""

    text: str
    at: tuple[int, ...] = ()
    image: str | None = None


class Wedding:
    """The marriage game of every group.

    ``names`` maps a user id to the name shown in the group; ``rng`` supplies
    ``randrange``.
    """

    def __init__(
        self,
        registry: Registry,
        names: Callable[[int], str],
        rng: random.Random | None = None,
    ) -> None:
        self.registry = registry
        self._names = names
        self._rng = rng if rng is not None else random.Random()

    def _pick(self, options: tuple[str, ...]) -> str:
        return options[self._rng.randrange(len(options))]

    def set_cd(self, gid: int, hours) -> Reply:
        """Set the group's skill cool-down in hours."""
        try:
            cd = float(hours)
        except (TypeError, ValueError) as err:
            return Reply(f"[qqwife]请设置纯数字\n{err}")
        self.registry.set_cd_time(gid, cd)
        return Reply("设置成功")

    def toggle(self, gid: int, status: str, mode: str) -> Reply:
        """Allow ("允许") or forbid ("禁止") free love or stealing partners."""
        try:
            self.registry.set_mode(gid, mode, status != "禁止")
        except ValueError as err:
            return Reply(f"[qqwife]群状态查询失败\n{err}")
        return Reply("设置成功")

    def favor(self, gid: int, uid: int, target: int) -> Reply:
        value = self.registry.get_favorability(uid, target)
        return Reply(f"\n当前你们好感度为{value}", at=(uid,))

    def marry_random(self, gid: int, uid: int, members: Iterable[Member]) -> Reply:
        """Marry a random single among the most recently active members."""
        reg = self.registry
        reg.open_day(gid)
        info, status = reg.lookup(gid, uid)
        if info is not None:
            if (status is Status.TOP and info.target == 0) or (
                status is Status.BOTTOM and info.user == 0
            ):
                return Reply("今天你是单身贵族噢")
            if status is Status.TOP:
                return Reply(
                    f"\n今天你在{info.updatetime}娶了群友"
                    f"\n[{info.targetname}]({info.target})哒",
                    at=(uid,),
                    image=avatar_url(info.target),
                )
            return Reply(
                f"\n今天你在{info.updatetime}被群友\n[{info.username}]({info.user})娶了",
                at=(uid,),
                image=avatar_url(info.user),
            )
        recent = sorted(members, key=lambda m: m.last_sent_time)[-_CANDIDATES:]
        singles = [m.user_id for m in recent if reg.lookup(gid, m.user_id)[1] is Status.SINGLE]
        if len(singles) <= 1:
            return Reply("~群里没有ta人是单身了哦 明天再试试叭")
        fiancee = singles[self._rng.randrange(len(singles))]
        if fiancee == uid:
            return Reply("呜...没娶到，你可以再尝试一次")
        reg.register(gid, uid, fiancee, self._names(uid), self._names(fiancee))
        favor = reg.set_favorability(uid, fiancee, 1 + self._rng.randrange(5))
        return Reply(
            f"今天你的群老婆是\n[{self._names(fiancee)}]({fiancee})哒\n当前你们好感度为{favor}",
            at=(uid,),
            image=avatar_url(fiancee),
        )

    def propose(self, gid: int, uid: int, choice: str, target: int) -> Reply:
        """Marry ("娶") or be married by ("嫁") ``target``."""
        reg = self.registry
        refusal = check_single(reg, gid, uid, target)
        if refusal is not None:
            return Reply(refusal)
        reg.write_cd_time(gid, uid, SKILL_PROPOSE)
        if uid == target:
            if self._rng.randrange(3) == 1:
                reg.register(gid, uid, 0, "", "")
                return Reply("今日获得成就：单身贵族")
            return Reply("今日获得成就：自恋狂")
        favor = max(reg.get_favorability(uid, target), 30)
        if self._rng.randrange(101) >= favor:
            return Reply(self._pick(CONFESS_FAILURE))
        if choice == "娶":
            reg.register(gid, uid, target, self._names(uid), self._names(target))
            choicetext = "\n今天你的群老婆是"
        else:
            reg.register(gid, target, uid, self._names(target), self._names(uid))
            choicetext = "\n今天你的群老公是"
        return Reply(
            self._pick(CONFESS_SUCCESS)
            + choicetext
            + f"\n[{self._names(target)}]({target})哒",
            at=(uid,),
            image=avatar_url(target),
        )

    def steal(self, gid: int, uid: int, target: int) -> Reply:
        """Take ``target`` away from their partner."""
        reg = self.registry
        refusal = check_mistress(reg, gid, uid, target)
        if refusal is not None:
            return Reply(refusal)
        reg.write_cd_time(gid, uid, SKILL_MISTRESS)
        if target == uid:
            return Reply("今日获得成就：自我攻略")
        favor = max(reg.get_favorability(uid, target), 30)
        if self._rng.randrange(101) >= favor // 3:
            return Reply("失败了！可惜")
        info, status = reg.lookup(gid, target)
        if info is None:
            return Reply("ta现在还是单身哦，快向ta表白吧！")
        user_a, user_c = uid, target
        if status is Status.TOP:
            reg.divorce_wife(gid, info.target)
            user_a, user_c = target, uid
            user_b = info.target
            choicetext = "老公"
        else:
            reg.divorce_husband(gid, info.user)
            user_b = info.user
            choicetext = "老婆"
        reg.register(gid, user_a, user_c, self._names(user_a), self._names(user_c))
        favor = reg.set_favorability(user_a, user_c, -5)
        reg.set_favorability(user_a, user_b, 5)
        return Reply(
            self._pick(STEAL_SUCCESS)
            + f"今天你的群{choicetext}是"
            + f"\n[{self._names(target)}]({target})哒\n当前你们好感度为{favor}",
            at=(uid,),
            image=avatar_url(target),
        )

    def matchmake(self, gid: int, uid: int, one: int, zero: int) -> Reply:
        """Pair ``one`` with ``zero`` as an admin."""
        reg = self.registry
        refusal = check_matchmaking(reg, gid, uid, one, zero)
        if refusal is not None:
            return Reply(refusal)
        reg.write_cd_time(gid, uid, SKILL_MATCHMAKING)
        favor = max(reg.get_favorability(one, zero), 30)
        if self._rng.randrange(101) >= favor:
            reg.set_favorability(uid, one, -1)
            reg.set_favorability(uid, zero, -1)
            return Reply(self._pick(CONFESS_FAILURE))
        reg.register(gid, one, zero, self._names(one), self._names(zero))
        reg.set_favorability(uid, one, 1)
        reg.set_favorability(uid, zero, 1)
        reg.set_favorability(one, zero, 1)
        return Reply(
            "恭喜你成功撮合了一对CP\n\n今天你的群老婆是"
            f"\n[{self._names(zero)}]({zero})哒",
            at=(uid, one),
            image=avatar_url(zero),
        )

    def gift(self, gid: int, uid: int, target: int, wallet: MutableMapping[int, int]) -> Reply:
        """Spend coins from ``wallet`` on a gift that changes favorability."""
        reg = self.registry
        cd = reg.get_cd_time(gid)
        if not reg.compare_cd_time(gid, uid, SKILL_GIFT, cd):
            return Reply("舔狗，今天你已经送过礼物了。")
        favor = reg.get_favorability(uid, target)
        balance = wallet.get(uid, 0)
        if balance < 1:
            return Reply("你钱包没钱啦！")
        money = self._rng.randrange(min(balance, 100)) + 1
        new_favor = 1
        if favor > 50:
            new_favor += money % 10
        else:
            new_favor += self._rng.randrange(money)
        mood = self._rng.randrange(5)
        if mood == 0:
            new_favor = -new_favor
        wallet[uid] = balance - money
        last = reg.set_favorability(uid, target, new_favor)
        reg.write_cd_time(gid, uid, SKILL_GIFT)
        if mood == 0:
            return Reply(f"你花了{money}ATRI币买了一件女装送给了ta,ta很不喜欢,你们的好感度降低至{last}")
        return Reply(f"你花了{money}ATRI币买了一件女装送给了ta,ta很喜欢,你们的好感度升至{last}")

    def divorce(self, gid: int, uid: int) -> Reply:
        reg = self.registry
        refusal = check_divorce(reg, gid, uid)
        if refusal is not None:
            return Reply(refusal)
        reg.write_cd_time(gid, uid, SKILL_DIVORCE)
        info, status = reg.lookup(gid, uid)
        if info is None:
            return Reply(_DB_ERROR)
        if status is Status.TOP:
            mun, fiancee = 1, info.target
        else:
            mun, fiancee = 0, info.user
        favor = reg.get_favorability(uid, fiancee)
        if favor < 20:
            favor = 10
        if self._rng.randrange(101) > 100 - favor:
            return Reply(self._pick(DIVORCE_FAILURE))
        if mun == 1:
            reg.divorce_wife(gid, fiancee)
        else:
            reg.divorce_husband(gid, fiancee)
        return Reply(DIVORCE_SUCCESS[mun])

    def roster(self, gid: int) -> Reply:
        """Today's couples of the group, one per line."""
        reg = self.registry
        if reg.open_day(gid):
            return Reply(NOBODY_MARRIED)
        couples = reg.roster(gid)
        if not couples:
            return Reply(NOBODY_MARRIED)
        lines = ["群老婆列表"]
        lines.extend(
            f"{username}({user}) ←→ {targetname}({target})"
            for username, user, targetname, target in couples
        )
        return Reply("\n".join(lines))

    def reset(self, gid: int, arg: str) -> Reply:
        """Clear rosters: "" or "本群" for this group, "所有" for all, or a group number."""
        if arg in ("", "本群"):
            if gid == 0:
                return Reply(GROUP_ONLY)
            cmd = str(gid)
        elif arg == "所有":
            cmd = "0"
        else:
            cmd = arg
        try:
            self.registry.reset_rosters(cmd)
        except LookupError as err:
            return Reply(f"{_DB_ERROR}{err}")
        return Reply("重置成功")