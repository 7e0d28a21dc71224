import os


def read_lines(filename):
    result = []
    with open(os.path.join(os.path.dirname(__file__), 'data', filename)) as f:
        for line in f:
            hash_pos = line.find('#')
            if hash_pos != -1:
                line = line[:hash_pos]
            line = line.strip()
            if line:
                result.append(line)
    return result


def read_vectors(filename):
    '''Return (input, answer) bit-pattern pairs from a two-column hex data file.'''
    result = []
    for line in read_lines(filename):
        x, answer = line.split()
        result.append((int(x, 16), int(answer, 16)))
    return result
