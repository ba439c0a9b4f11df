from .quadratic import *
