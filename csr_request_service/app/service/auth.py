# Demo login gate: any non-empty credentials plus an addition CAPTCHA
import logging
import random
import uuid
from collections import OrderedDict
from typing import Optional

from pydantic import BaseModel, Field

from csr_request_service.app.config import settings
from csr_request_service.app.service.exceptions import CaptchaMismatchError, MissingFieldError

logger = logging.getLogger(__name__)

CAPTCHA_MIN_OPERAND = 1
CAPTCHA_MAX_OPERAND = 10


class CaptchaChallenge(BaseModel):
    challenge_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    first_operand: int
    second_operand: int

    @property
    def question(self) -> str:
        return f"{self.first_operand} + {self.second_operand} = ?"

    @property
    def answer(self) -> int:
        return self.first_operand + self.second_operand


def generate_captcha(rng: Optional[random.Random] = None) -> CaptchaChallenge:
    rng = rng or random
    return CaptchaChallenge(
        first_operand=rng.randint(CAPTCHA_MIN_OPERAND, CAPTCHA_MAX_OPERAND),
        second_operand=rng.randint(CAPTCHA_MIN_OPERAND, CAPTCHA_MAX_OPERAND),
    )


def check_captcha_answer(challenge: CaptchaChallenge, answer: Optional[str]) -> None:
    try:
        given = int(str(answer).strip())
    except (TypeError, ValueError):
        raise CaptchaMismatchError()
    if given != challenge.answer:
        raise CaptchaMismatchError()


def verify_login(username: Optional[str], password: Optional[str], challenge: Optional[CaptchaChallenge], captcha_answer: Optional[str]) -> str:
    """
    Checks a login attempt and returns the accepted username.

    Empty credentials are reported before the CAPTCHA is looked at. There is
    no credential store: any non-empty pair passes once the CAPTCHA does.
    """
    if not username or not password:
        raise MissingFieldError()
    if challenge is None:
        raise CaptchaMismatchError("Unknown or expired CAPTCHA challenge")
    check_captcha_answer(challenge, captcha_answer)
    return username


class CaptchaRegistry:
    """
    Outstanding CAPTCHA challenges, keyed by challenge id. Holds at most
    ``max_size`` challenges; issuing past that evicts the oldest one, which
    then fails login as an unknown challenge.
    """

    def __init__(self, rng: Optional[random.Random] = None, max_size: Optional[int] = None):
        self._rng = rng
        self.max_size = max_size or settings.CAPTCHA_REGISTRY_SIZE
        self._challenges: "OrderedDict[str, CaptchaChallenge]" = OrderedDict()

    def issue(self) -> CaptchaChallenge:
        challenge = generate_captcha(self._rng)
        self._challenges[challenge.challenge_id] = challenge
        while len(self._challenges) > self.max_size:
            evicted_id, _ = self._challenges.popitem(last=False)
            logger.debug(f"CAPTCHA challenge {evicted_id} evicted.")
        logger.info(f"CAPTCHA challenge {challenge.challenge_id} issued.")
        return challenge

    def get(self, challenge_id: Optional[str]) -> Optional[CaptchaChallenge]:
        if not challenge_id:
            return None
        return self._challenges.get(challenge_id)

    def discard(self, challenge_id: str) -> None:
        self._challenges.pop(challenge_id, None)

    def __len__(self) -> int:
        return len(self._challenges)
