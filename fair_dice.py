import sys
import re
import hmac
import hashlib
import logging
import secrets
from dataclasses import dataclass
from fractions import Fraction
from typing import Callable, Optional
from tabulate import tabulate

logger = logging.getLogger(__name__)

FACES_PER_DIE = 6
MIN_DICE = 3
KEY_SIZE_BYTES = 32
HASH_ALGORITHM = hashlib.sha3_256

# ==============================================================================
# 1. Error Handling Classes
# ==============================================================================

class DiceGameError(Exception):
    """Base class for every error the game reports to the user."""


class UsageError(DiceGameError):
    """
    Malformed or insufficient dice definitions on the command line.
    Provides a formatted message including an example of correct usage.
    """
    _invocation_command = "python"

    @staticmethod
    def set_invocation_command(command: str):
        """Sets the command used to run the script (e.g., 'python' or 'py')."""
        UsageError._invocation_command = command

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        script_name = sys.argv[0] if sys.argv else 'fair_dice.py'
        example = (
            f"{UsageError._invocation_command} {script_name} "
            f"2,2,4,4,9,9 1,1,6,6,8,8 3,3,5,5,7,7"
        )
        return f"\nArgument Error: {self.message}\n\nExample usage:\n{example}\n"

UsageError.NOT_ENOUGH_DICE = UsageError(f"Please specify at least {MIN_DICE} dice.")
UsageError.WRONG_FACE_COUNT = UsageError(f"Every die must have exactly {FACES_PER_DIE} faces.")
UsageError.NON_INTEGER_VALUE = UsageError("All dice faces must be integer values.")


class ValidationError(DiceGameError):
    """The user's number for a round is not an integer in range."""


class MenuInputError(DiceGameError):
    """The menu selection is not a dice number, 'H' or 'E'."""

# ==============================================================================
# 2. Data Structure for a Die
# ==============================================================================

class Die:
    def __init__(self, faces):
        faces = tuple(faces)
        if len(faces) != FACES_PER_DIE:
            raise ValueError(f"A die must have exactly {FACES_PER_DIE} faces.")
        self._faces = faces

    @property
    def faces(self) -> tuple:
        return self._faces

    def __str__(self) -> str:
        return ",".join(map(str, self._faces))

    def __repr__(self) -> str:
        return f"Die([{self}])"

    def __len__(self) -> int:
        return len(self._faces)

    def __eq__(self, other) -> bool:
        return isinstance(other, Die) and self._faces == other._faces

    def __hash__(self) -> int:
        return hash(self._faces)

# ==============================================================================
# 3. Command-Line Argument Parser
# ==============================================================================

class DiceParser:
    @staticmethod
    def parse(args: list[str]) -> list[Die]:
        if len(args) < MIN_DICE:
            raise UsageError.NOT_ENOUGH_DICE
        dice_list = []
        for arg in args:
            try:
                faces = [int(f) for f in arg.split(',')]
            except ValueError:
                raise UsageError.NON_INTEGER_VALUE
            if len(faces) != FACES_PER_DIE:
                raise UsageError.WRONG_FACE_COUNT
            dice_list.append(Die(faces))
        return dice_list

# ==============================================================================
# 4. Cryptographic Operations Provider
# ==============================================================================

class CryptoProvider:
    """
    Randomness and keyed hashing used by the fairness protocol.
    Tests substitute a subclass returning fixed keys and numbers.
    """

    @staticmethod
    def generate_key() -> bytes:
        return secrets.token_bytes(KEY_SIZE_BYTES)

    @staticmethod
    def generate_secure_random(max_val: int, randbits: Callable[[int], int] = secrets.randbits) -> int:
        """
        Uniform integer in [0, max_val) by rejection sampling.
        Draws just enough bits to cover max_val and redraws out-of-range
        candidates instead of reducing them modulo max_val.
        """
        if max_val <= 0:
            raise ValueError("max_val must be positive.")
        bits = max_val.bit_length()
        while True:
            candidate = randbits(bits)
            if candidate < max_val:
                return candidate

    @staticmethod
    def calculate_hmac(key: bytes, message_int: int) -> str:
        message_bytes = str(message_int).encode('utf-8')
        h = hmac.new(key, message_bytes, HASH_ALGORITHM)
        return h.hexdigest().upper()

# ==============================================================================
# 5. Probability Calculation Logic
# ==============================================================================

class ProbabilityCalculator:
    @staticmethod
    def pairwise_win_rate(die_a: Die, die_b: Die) -> Fraction:
        """
        Probability that die_a shows a strictly higher face than die_b,
        counting only rolls that have a winner. Two dice that tie on every
        face pair are treated as a coin flip.
        """
        wins_a = sum(1 for a in die_a.faces for b in die_b.faces if a > b)
        wins_b = sum(1 for a in die_a.faces for b in die_b.faces if b > a)
        decided = wins_a + wins_b
        if decided == 0:
            return Fraction(1, 2)
        return Fraction(wins_a, decided)

    @staticmethod
    def build_matrix(dice: list[Die]) -> list[list[Fraction]]:
        matrix = []
        for i, row_die in enumerate(dice):
            row = []
            for j, col_die in enumerate(dice):
                if i == j:
                    row.append(Fraction(1, 2))
                else:
                    row.append(ProbabilityCalculator.pairwise_win_rate(row_die, col_die))
            matrix.append(row)
        return matrix

# ==============================================================================
# 6. Help Table Generation
# ==============================================================================

class HelpTableGenerator:
    @staticmethod
    def generate_table(all_dice: list[Die], calculator=ProbabilityCalculator) -> str:
        matrix = calculator.build_matrix(all_dice)
        headers = ["User v PC >"] + [str(i) for i in range(1, len(all_dice) + 1)]
        table_data = []
        for index, (die, probabilities) in enumerate(zip(all_dice, matrix), start=1):
            row = [f"{index} [{die}]"]
            row.extend(f"{float(p):.2f}" for p in probabilities)
            table_data.append(row)

        intro = (
            "\n--- Win Probability Table ---\n"
            "Probability of the User's die (rows) beating the PC's die (columns), ties excluded.\n"
            "Diagonal values are fixed at 0.50: a die against itself is a coin flip.\n"
        )
        return intro + tabulate(table_data, headers=headers, tablefmt="grid", disable_numparse=True)

# ==============================================================================
# 7. Console User Interface
# ==============================================================================

class GameUI:
    def display_message(self, text: str):
        print(text)

    def display_error(self, error: DiceGameError):
        print(f"Error: {error}")

    def display_hmac(self, hmac_hex: str):
        print(f"HMAC: {hmac_hex}")

    def display_menu(self, dice: list[Die]):
        print("\nMenu:")
        for i, die in enumerate(dice, start=1):
            print(f"{i}: Dice [{', '.join(map(str, die.faces))}]")
        print("H: Help")
        print("E: Exit")

    def display_round(self, fair_round: "FairRound", die: Die):
        print(f"Your number: {fair_round.user_number}")
        print(f"Computer number: {fair_round.computer_number}")
        print(f"Key used: {fair_round.secret_key.hex().upper()}")
        print(
            f"Result: ({fair_round.computer_number} + {fair_round.user_number}) "
            f"mod {fair_round.max_value} = {fair_round.result}"
        )
        print(f"Your die rolled: {die.faces[fair_round.result]}")
        print("Check: HMAC-SHA3-256 of the computer number, keyed with the key above, equals the HMAC shown earlier.")

    def prompt(self, text: str) -> str:
        return input(text).strip()

# ==============================================================================
# 8. Provably Fair Random Number Generation
# ==============================================================================

@dataclass(frozen=True)
class Commitment:
    secret_key: bytes
    computer_number: int
    digest: str
    max_value: int


@dataclass(frozen=True)
class FairRound:
    secret_key: bytes
    computer_number: int
    commitment_digest: str
    user_number: int
    max_value: int

    @property
    def result(self) -> int:
        return (self.user_number + self.computer_number) % self.max_value


_INTEGER_PATTERN = re.compile(r"-?[0-9]+")


def verify_commitment(digest: str, secret_key: bytes, computer_number: int,
                      crypto=CryptoProvider) -> bool:
    """Recompute the HMAC from revealed values and compare with the published digest."""
    expected = crypto.calculate_hmac(secret_key, computer_number)
    return hmac.compare_digest(expected.upper(), digest.upper())


def verify_round(fair_round: FairRound, crypto=CryptoProvider) -> bool:
    return verify_commitment(
        fair_round.commitment_digest, fair_round.secret_key, fair_round.computer_number, crypto
    )


class FairnessEngine:
    """
    Commit-reveal generation of a random number shared between host and user.

    The host fixes its number and publishes an HMAC of it before the user
    answers; revealing the key afterwards lets the user recompute the HMAC
    and confirm the host's number was not changed.
    """

    def __init__(self, crypto_provider=None):
        self.crypto = crypto_provider or CryptoProvider()

    def commit(self, max_val: int) -> Commitment:
        if max_val <= 0:
            raise ValueError("max_val must be positive.")
        key = self.crypto.generate_key()
        computer_number = self.crypto.generate_secure_random(max_val)
        digest = self.crypto.calculate_hmac(key, computer_number)
        logger.debug("Committed to a number in range 0..%d (HMAC=%s)", max_val - 1, digest)
        return Commitment(key, computer_number, digest, max_val)

    def reveal(self, commitment: Commitment, user_number_raw: str) -> FairRound:
        user_number = self._parse_user_number(user_number_raw, commitment.max_value)
        fair_round = FairRound(
            secret_key=commitment.secret_key,
            computer_number=commitment.computer_number,
            commitment_digest=commitment.digest,
            user_number=user_number,
            max_value=commitment.max_value,
        )
        logger.debug("Revealed round %s: result %d", commitment.digest, fair_round.result)
        return fair_round

    def run_fair_round(self, max_val: int, read_user_number: Callable[[Commitment], str]) -> FairRound:
        """
        Commit, hand the commitment to the caller to publish and collect the
        user's number, then reveal. ValidationError leaves nothing revealed.
        """
        commitment = self.commit(max_val)
        user_number_raw = read_user_number(commitment)
        return self.reveal(commitment, user_number_raw)

    @staticmethod
    def _parse_user_number(raw: str, max_val: int) -> int:
        text = raw.strip()
        if not _INTEGER_PATTERN.fullmatch(text):
            raise ValidationError(f"'{text}' is not an integer. Enter a number from 0 to {max_val - 1}.")
        value = int(text)
        if not 0 <= value < max_val:
            raise ValidationError(f"{value} is out of range. Enter a number from 0 to {max_val - 1}.")
        return value

# ==============================================================================
# 9. Main Game Controller
# ==============================================================================

class GameController:
    def __init__(self, dice: list[Die], ui: GameUI, engine: FairnessEngine, help_gen: HelpTableGenerator):
        self.all_dice = dice
        self.ui = ui
        self.engine = engine
        self.help_gen = help_gen

    def run(self):
        self.ui.display_message("Welcome to the Generalized Dice Game!")
        while True:
            self.ui.display_menu(self.all_dice)
            choice = self.ui.prompt("Select an option: ")
            try:
                if not self._handle_choice(choice):
                    break
            except (MenuInputError, ValidationError) as e:
                self.ui.display_error(e)

    def _handle_choice(self, choice: str) -> bool:
        """Returns False when the user asked to exit."""
        option = choice.upper()
        if option == 'E':
            self.ui.display_message("Thanks for playing!")
            return False
        if option == 'H':
            self.ui.display_message(self.help_gen.generate_table(self.all_dice, ProbabilityCalculator))
            return True
        self._play_round(self._select_die(choice))
        return True

    def _select_die(self, choice: str) -> Die:
        if choice.isdigit() and choice.isascii():
            index = int(choice) - 1
            if 0 <= index < len(self.all_dice):
                return self.all_dice[index]
        raise MenuInputError(f"Invalid choice '{choice}'. Enter 1-{len(self.all_dice)}, 'H' or 'E'.")

    def _play_round(self, die: Die):
        self.ui.display_message(f"You selected dice: [{die}]")
        num_faces = len(die)

        def read_user_number(commitment: Commitment) -> str:
            self.ui.display_message(f"I have chosen a random value in range 0..{num_faces - 1}.")
            self.ui.display_hmac(commitment.digest)
            return self.ui.prompt(f"Enter your number (0 to {num_faces - 1}): ")

        fair_round = self.engine.run_fair_round(num_faces, read_user_number)
        self.ui.display_round(fair_round, die)

# ==============================================================================
# 10. Main Execution Block
# ==============================================================================

def main(argv: Optional[list[str]] = None):
    logging.basicConfig(level=logging.WARNING, stream=sys.stderr,
                        format="%(levelname)s %(name)s: %(message)s")
    try:
        # Dynamically determine the command used to invoke the script
        if 'py.exe' in sys.executable.lower():
            UsageError.set_invocation_command('py')
        else:
            UsageError.set_invocation_command('python')

        args = sys.argv[1:] if argv is None else argv
        dice = DiceParser.parse(args)

        ui = GameUI()
        engine = FairnessEngine(CryptoProvider())
        help_gen = HelpTableGenerator()

        controller = GameController(dice, ui, engine, help_gen)
        controller.run()

    except UsageError as e:
        print(e, file=sys.stderr)
        sys.exit(1)
    except (KeyboardInterrupt, EOFError):
        print("\nGame interrupted. Goodbye!")
        sys.exit(0)

if __name__ == "__main__":
    main()
