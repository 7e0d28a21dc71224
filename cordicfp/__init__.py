#
# tanh and reciprocal of IEEE-754 binary32 bit patterns by CORDIC and Newton-Raphson
#

from .fields import *
from .compare import *
from .softfloat import *
from .tables import *
from .cordic import *
from .reciprocal import *

__version__ = '1.0.0'
